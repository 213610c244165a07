import unittest

from reopener.commands import CommandKind, parse_command, parse_date_ms, split_command

JAN_1_2030_MS = 1893456000000


class SplitCommandTests(unittest.TestCase):
    def test_requires_leading_hash(self) -> None:
        self.assertIsNone(split_command("REOPEN@2030-01-01"))
        self.assertIsNone(split_command(" #REOPEN@2030-01-01"))
        self.assertIsNone(split_command(""))

    def test_splits_on_first_at(self) -> None:
        self.assertEqual(split_command("#REOPEN@2030-01-01@x"), ("REOPEN", "2030-01-01@x"))
        self.assertEqual(split_command("#REOPEN"), ("REOPEN", ""))


class ParseCommandTests(unittest.TestCase):
    def test_reopen_with_date(self) -> None:
        cmd = parse_command("#REOPEN@2030-01-01")
        self.assertIsNotNone(cmd)
        self.assertEqual(cmd.kind, CommandKind.REOPEN)
        self.assertEqual(cmd.arg, "2030-01-01")
        self.assertEqual(cmd.due_at, JAN_1_2030_MS)

    def test_reopen_with_offset_datetime(self) -> None:
        cmd = parse_command("#REOPEN@2030-01-01T10:00:00+02:00")
        self.assertEqual(cmd.due_at, JAN_1_2030_MS + 8 * 3600 * 1000)

    def test_past_dates_are_accepted(self) -> None:
        self.assertIsNotNone(parse_command("#REOPEN@2001-05-04"))

    def test_keyword_is_case_sensitive(self) -> None:
        self.assertIsNone(parse_command("#reopen@2030-01-01"))

    def test_unknown_keyword(self) -> None:
        self.assertIsNone(parse_command("#SNOOZE@2030-01-01"))

    def test_bad_or_missing_date(self) -> None:
        self.assertIsNone(parse_command("#REOPEN@not-a-date"))
        self.assertIsNone(parse_command("#REOPEN@"))
        self.assertIsNone(parse_command("#REOPEN"))

    def test_date_past_year_9999_in_utc_is_ignored(self) -> None:
        self.assertIsNone(parse_command("#REOPEN@9999-12-31T23:00:00-05:00"))
        self.assertIsNotNone(parse_command("#REOPEN@9999-12-31T23:00:00"))

    def test_plain_preview(self) -> None:
        self.assertIsNone(parse_command("Thanks, we'll get back to you"))
        self.assertIsNone(parse_command(None))


class ParseDateTests(unittest.TestCase):
    def test_naive_dates_are_utc(self) -> None:
        self.assertEqual(parse_date_ms("2030-01-01 00:00"), JAN_1_2030_MS)

    def test_written_out_date(self) -> None:
        self.assertEqual(parse_date_ms("January 1, 2030"), JAN_1_2030_MS)

    def test_garbage(self) -> None:
        self.assertIsNone(parse_date_ms("   "))
        self.assertIsNone(parse_date_ms("next-ish"))


if __name__ == "__main__":
    unittest.main()

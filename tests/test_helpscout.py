import json
import unittest
from urllib.parse import parse_qs

import httpx

from reopener.helpscout import HelpScoutClient, ReopenError, TokenError

AUTH = "https://hs.test/v2/oauth2/token"
API = "https://hs.test/v2"


def _client(handler) -> HelpScoutClient:
    return HelpScoutClient(
        "app-id", "app-secret",
        auth_endpoint=AUTH, api_base=API + "/",
        transport=httpx.MockTransport(handler),
    )


class TokenTests(unittest.IsolatedAsyncioTestCase):
    async def test_client_credentials_exchange(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["content-type"]
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "abc", "expires_in": 7200})

        client = _client(handler)
        try:
            token = await client.get_access_token()
        finally:
            await client.aclose()

        self.assertEqual(token, "abc")
        self.assertEqual(seen["method"], "POST")
        self.assertEqual(seen["url"], AUTH)
        self.assertTrue(seen["content_type"].startswith("application/x-www-form-urlencoded"))
        self.assertEqual(seen["form"], {
            "grant_type": ["client_credentials"],
            "client_id": ["app-id"],
            "client_secret": ["app-secret"],
        })

    async def test_usable_after_close(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"access_token": "abc"}))
        try:
            self.assertEqual(await client.get_access_token(), "abc")
            await client.aclose()
            self.assertEqual(await client.get_access_token(), "abc")
        finally:
            await client.aclose()

    async def test_non_2xx_raises(self) -> None:
        client = _client(lambda request: httpx.Response(401, json={"error": "invalid_client"}))
        try:
            with self.assertRaises(TokenError) as ctx:
                await client.get_access_token()
        finally:
            await client.aclose()
        self.assertEqual(ctx.exception.status_code, 401)

    async def test_malformed_body_raises(self) -> None:
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))
        try:
            with self.assertRaises(TokenError):
                await client.get_access_token()
        finally:
            await client.aclose()

    async def test_missing_token_field_raises(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={"token_type": "bearer"}))
        try:
            with self.assertRaises(TokenError):
                await client.get_access_token()
        finally:
            await client.aclose()

    async def test_network_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        try:
            with self.assertRaises(TokenError):
                await client.get_access_token()
        finally:
            await client.aclose()


class ReopenTests(unittest.IsolatedAsyncioTestCase):
    async def test_patches_status_to_active(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(204)

        client = _client(handler)
        try:
            await client.reopen_conversation("42", "tok")
        finally:
            await client.aclose()

        self.assertEqual(seen["method"], "PATCH")
        self.assertEqual(seen["url"], API + "/conversations/42")
        self.assertEqual(seen["auth"], "Bearer tok")
        self.assertEqual(seen["body"], {"op": "replace", "path": "/status", "value": "active"})

    async def test_failure_is_reported(self) -> None:
        client = _client(lambda request: httpx.Response(404, json={"message": "not found"}))
        try:
            with self.assertRaises(ReopenError) as ctx:
                await client.reopen_conversation("42", "tok")
        finally:
            await client.aclose()
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_timeout_is_reported(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)
        try:
            with self.assertRaises(ReopenError):
                await client.reopen_conversation("42", "tok")
        finally:
            await client.aclose()


if __name__ == "__main__":
    unittest.main()

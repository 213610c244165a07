import datetime as dt
import html
from typing import Iterable

from reopener import config
from reopener.store import STATUS_FAILED, ScheduledReopen

_STYLE = """
  table {
    border-collapse: collapse;
    width: 100%;
    color: #333333;
    font-family: Arial, sans-serif;
    font-size: 12px;
    text-align: left;
    box-shadow: 0 0 20px rgba(0, 0, 0, 0.1);
    margin: auto;
    margin-bottom: 50px;
  }
  table th {
    background-color: #333333;
    color: #ffffff;
    padding: 10px;
    text-transform: uppercase;
    letter-spacing: 1px;
  }
  table tr:nth-child(even) td { background-color: #f2f2f2; }
  table td { padding: 10px; border-bottom: 1px solid #cccccc; font-weight: bold; }
  td.failed { color: #b00020; }
"""


def _fmt_due(due_at_ms: int) -> str:
    try:
        d = dt.datetime.fromtimestamp(due_at_ms / 1000, tz=dt.timezone.utc)
    except (ValueError, OverflowError, OSError):
        return str(due_at_ms)
    return d.strftime("%a %b %d %Y")  # e.g. "Tue Jan 01 2030"


def conversation_link(conversation_id: str) -> str:
    return f"{config.HS_DASHBOARD_BASE.rstrip('/')}/{conversation_id}"


def _row(item: ScheduledReopen) -> str:
    cid = html.escape(item.conversation_id)
    href = html.escape(conversation_link(item.conversation_id), quote=True)
    if item.status == STATUS_FAILED:
        state = f'<td class="failed">failed after {item.attempts} attempts</td>'
    elif item.attempts:
        state = f"<td>retrying ({item.attempts} failed)</td>"
    else:
        state = "<td>pending</td>"
    return (
        "<tr>"
        f'<td><a href="{href}">{cid}</a></td>'
        f"<td>{_fmt_due(item.due_at)}</td>"
        f"{state}"
        "</tr>"
    )


def render_dashboard(items: Iterable[ScheduledReopen]) -> str:
    """HTML table of schedules, soonest first."""
    rows = "\n".join(_row(i) for i in sorted(items, key=lambda i: i.due_at))
    return f"""<!doctype html>
<html>
<head><meta charset="utf-8"><title>Scheduled reopens</title><style>{_STYLE}</style></head>
<body>
  <div style="font-family: sans-serif">
    <table>
      <thead>
        <tr><th>ID</th><th>Reopen date</th><th>State</th></tr>
      </thead>
      <tbody>
{rows}
      </tbody>
    </table>
  </div>
</body>
</html>
"""

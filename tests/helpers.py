from __future__ import annotations

import textwrap
from pathlib import Path

POST_LAYOUT = """\
<article>{{ page_content }}</article>
{% if page.previous %}<a rel="prev" href="{{ page.previous.url }}">{{ page.previous.title }}</a>{% endif %}
{% if page.next %}<a rel="next" href="{{ page.next.url }}">{{ page.next.title }}</a>{% endif %}
"""


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(content), encoding="utf-8")


def post(title: str, date: str, body: str = "Body text.", **extra) -> str:
    lines = ["---", f"title: {title}", f"date: {date}"]
    lines.extend(f"{key}: {value}" for key, value in extra.items())
    lines.extend(["---", body, ""])
    return "\n".join(lines)

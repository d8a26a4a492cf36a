"""JSON wire codec for remote objects.

Remote objects are usually written by this package, but snapshots are also
hand-edited or produced by other tools. Decoding therefore falls back to a
sanitizing pass that accepts comments, bare keys, single quotes and trailing
commas.
"""

import json
import re
from typing import Any

from chatsync.exceptions import PayloadDecodeError

_BLOCK_COMMENT = re.compile(r"/\*[\s\S]*?\*/")
_LINE_COMMENT = re.compile(r"//[^\n\r]*")
_BARE_KEY = re.compile(r"([{\s,])([A-Za-z_][A-Za-z0-9_]*)\s*:")
_SINGLE_QUOTED = re.compile(r"'([^'\\]*(?:\\.[^'\\]*)*)'")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _sanitize(text: str) -> str:
    text = text.lstrip("\ufeff")
    text = _BLOCK_COMMENT.sub("", text)
    text = _LINE_COMMENT.sub("", text)
    text = _BARE_KEY.sub(r'\1"\2":', text)
    text = _SINGLE_QUOTED.sub(r'"\1"', text)
    return _TRAILING_COMMA.sub(r"\1", text)


def parse_with_compatibility(text: str) -> Any:
    """Parse JSON, retrying once with a lenient sanitizing pass.

    Raises:
        PayloadDecodeError: If neither strict nor lenient parsing succeeds
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    try:
        return json.loads(_sanitize(text))
    except json.JSONDecodeError as e:
        raise PayloadDecodeError(
            f"Invalid JSON (also after removing comments and trailing commas): {e}"
        ) from e


def decode_json(data: bytes) -> Any:
    """Decode a remote object body.

    Raises:
        PayloadDecodeError: If the body is empty, not UTF-8, or not JSON
    """
    if not data:
        raise PayloadDecodeError("Empty payload")
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadDecodeError(f"Payload is not UTF-8: {e}") from e
    return parse_with_compatibility(text)


def encode_json(value: Any) -> bytes:
    return json.dumps(value, indent=2, ensure_ascii=False).encode("utf-8")

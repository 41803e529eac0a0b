"""Payload interpretation and recovery of malformed JSON-like content.

Bodies reach the engine as parsed values, text or bytes. Text that should be
JSON but does not parse goes through two passes:

1. Light syntactic repair (comments, trailing commas, bare keys, single
   quotes, Python literal spellings) followed by a re-parse.
2. Structural guessing from delimiters and top-level ``key:`` pairs.

Nothing in this module raises to its callers; the worst outcome is a string
schema flagged as unstructured.
"""

import json
import logging
import re
from typing import Any

from ..errors import RecoverableInferenceFailure
from .schema_inferrer import (
    ArraySchema,
    BooleanSchema,
    IntegerSchema,
    NullSchema,
    NumberSchema,
    ObjectSchema,
    SchemaInferrer,
    SchemaNode,
    StringSchema,
)

logger = logging.getLogger(__name__)

BINARY_CONTENT_PREFIXES = ("image/", "audio/", "video/", "font/")
BINARY_CONTENT_TYPES = {
    "application/octet-stream",
    "application/pdf",
    "application/zip",
    "application/gzip",
    "application/x-protobuf",
    "application/grpc",
}

_LITERALS = {
    "True": "true",
    "False": "false",
    "None": "null",
}

_KEY_PATTERN = re.compile(
    r"""\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)'|([A-Za-z_$][\w$-]*))\s*:""",
)
_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?")
_CHARSET_PATTERN = re.compile(r"charset\s*=\s*\"?([\w.:-]+)", re.IGNORECASE)


def media_type(content_type: str | None) -> str:
    """Lower-cased media type without parameters."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def charset_of(content_type: str | None, default: str = "utf-8") -> str:
    """Charset parameter of a content type, or ``default``."""
    if content_type:
        match = _CHARSET_PATTERN.search(content_type)
        if match:
            return match.group(1)
    return default


def is_json_content_type(content_type: str | None) -> bool:
    mt = media_type(content_type)
    return mt == "application/json" or mt.endswith("+json") or mt.endswith("/json")


def is_binary_content_type(content_type: str | None) -> bool:
    mt = media_type(content_type)
    return mt in BINARY_CONTENT_TYPES or mt.startswith(BINARY_CONTENT_PREFIXES)


def looks_like_json(text: str) -> bool:
    """True when text is delimited like a JSON object or array."""
    stripped = text.strip()
    return (stripped.startswith("{") and stripped.endswith("}")) or (
        stripped.startswith("[") and stripped.endswith("]")
    )


def decode_text(data: bytes, content_type: str | None = None) -> str:
    """Decode bytes using the content type's charset, replacing bad sequences."""
    try:
        return data.decode(charset_of(content_type), errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def _scan_string(text: str, start: int) -> tuple[int, bool]:
    """Find the end of the quoted span opening at ``start``.

    Returns the index just past the closing quote and whether the span was
    terminated before the end of the text.
    """
    quote = text[start]
    i = start + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1, True
        i += 1
    return n, False


def _skip_insignificant(text: str, i: int) -> int:
    """Skip whitespace and comments starting at ``i``."""
    n = len(text)
    while i < n:
        if text[i].isspace():
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
        else:
            break
    return i


def _requote(inner: str) -> str:
    """Rewrite the body of a single-quoted string as a JSON string literal."""
    out = ['"']
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\" and i + 1 < len(inner):
            nxt = inner[i + 1]
            out.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        out.append('\\"' if ch == '"' else ch)
        i += 1
    out.append('"')
    return "".join(out)


def repair_json_text(text: str) -> str:
    """Apply light syntactic repairs to JSON-like text.

    Strips ``//`` and ``/* */`` comments, drops trailing commas, quotes bare
    object keys, converts single-quoted strings and maps ``True``/``False``/
    ``None`` to JSON literals. Double-quoted spans are copied untouched.
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch == '"':
            end, _ = _scan_string(text, i)
            out.append(text[i:end])
            i = end
            continue

        if ch == "'":
            end, terminated = _scan_string(text, i)
            inner = text[i + 1 : end - 1] if terminated else text[i + 1 : end]
            out.append(_requote(inner))
            i = end
            continue

        if text.startswith("//", i) or text.startswith("/*", i):
            i = _skip_insignificant(text, i)
            continue

        if ch == ",":
            nxt = _skip_insignificant(text, i + 1)
            if nxt < n and text[nxt] in "}]":
                i += 1
                continue

        if ch.isalpha() or ch in "_$":
            j = i
            while j < n and (text[j].isalnum() or text[j] in "_$"):
                j += 1
            word = text[i:j]
            after = _skip_insignificant(text, j)
            if after < n and text[after] == ":":
                out.append(json.dumps(word))
            else:
                out.append(_LITERALS.get(word, word))
            i = j
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def parse_json_lenient(text: str) -> Any:
    """Parse JSON, retrying once after light repair.

    Raises:
        RecoverableInferenceFailure: if neither the text nor its repair parses
    """
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        pass

    try:
        value = json.loads(repair_json_text(text))
    except (ValueError, RecursionError) as e:
        raise RecoverableInferenceFailure(f"Unparseable JSON-like content: {e}") from e

    logger.debug("Parsed JSON-like content after repair")
    return value


class ContentRecovery:
    """Turn raw payloads into schemas, degrading gracefully.

    Provides:
    - Strict JSON interpretation of text and bytes bodies
    - Repair-and-reparse for almost-JSON text
    - Delimiter and key-pattern guessing when repair fails
    - Binary payload tagging
    """

    def __init__(self, inferrer: SchemaInferrer | None = None) -> None:
        self.inferrer = inferrer or SchemaInferrer()

    def interpret(self, body: Any, content_type: str | None = None) -> SchemaNode:
        """Infer a schema for a body of any representation.

        Args:
            body: Parsed value, text or bytes
            content_type: Content-Type the body was sent with

        Returns:
            Inferred schema; never raises
        """
        if isinstance(body, (bytes, bytearray)):
            if is_binary_content_type(content_type):
                return StringSchema(format="binary")
            body = decode_text(bytes(body), content_type)

        if isinstance(body, str):
            if is_json_content_type(content_type) or looks_like_json(body):
                try:
                    value = json.loads(body)
                except (ValueError, RecursionError):
                    return self.recover(body)
                try:
                    return self.inferrer.infer(value)
                except RecoverableInferenceFailure as e:
                    logger.warning("Falling back to structural guess: %s", e)
                    return self.guess_structure(body)
            return StringSchema(example=body)

        try:
            return self.inferrer.infer(body)
        except RecoverableInferenceFailure as e:
            logger.warning("Payload left unstructured: %s", e)
            return StringSchema(unstructured=True)

    def recover(self, text: str) -> SchemaNode:
        """Recover a schema from text that failed strict JSON parsing."""
        try:
            return self.inferrer.infer(parse_json_lenient(text))
        except RecoverableInferenceFailure as e:
            logger.warning("Falling back to structural guess: %s", e)
        return self.guess_structure(text)

    def guess_structure(self, text: str) -> SchemaNode:
        """Classify text by its delimiters and guess property kinds.

        Args:
            text: Content that could not be parsed even after repair

        Returns:
            Array, object, or unstructured string schema
        """
        stripped = text.strip()

        if stripped.startswith("[") and stripped.endswith("]"):
            first_object = stripped.find("{", 1)
            if first_object == -1:
                return ArraySchema(ObjectSchema())
            return ArraySchema(self._guess_object(stripped[first_object:]))

        if stripped.startswith("{") and stripped.endswith("}"):
            return self._guess_object(stripped)

        return StringSchema(unstructured=True, example=text)

    def _guess_object(self, text: str) -> ObjectSchema:
        """Extract top-level property names and guess each value's kind."""
        properties: dict[str, SchemaNode] = {}
        depth = 0
        expect_key = False
        i = 0
        n = len(text)

        while i < n:
            if depth == 1 and expect_key:
                expect_key = False
                match = _KEY_PATTERN.match(text, i)
                if match:
                    name = next(g for g in match.groups() if g is not None)
                    properties.setdefault(name, self._guess_kind(text[match.end() :]))
                    i = match.end()
                    continue

            ch = text[i]
            if ch in "\"'":
                i, _ = _scan_string(text, i)
                continue
            if ch in "{[":
                depth += 1
                expect_key = ch == "{" and depth == 1
            elif ch in "}]":
                depth -= 1
                if depth <= 0:
                    break
            elif ch == "," and depth == 1:
                expect_key = True
            i += 1

        return ObjectSchema(tuple(properties.items()))

    @staticmethod
    def _guess_kind(fragment: str) -> SchemaNode:
        """Guess a primitive kind from the text following a colon."""
        value = fragment.lstrip()
        if not value:
            return StringSchema()
        if value[0] == "{":
            return ObjectSchema()
        if value[0] == "[":
            return ArraySchema(ObjectSchema())
        if value[0] in "\"'":
            return StringSchema()

        number = _NUMBER_PATTERN.match(value)
        if number:
            if float(number.group()).is_integer():
                return IntegerSchema()
            return NumberSchema()

        lowered = value[:5].lower()
        if lowered.startswith(("true", "false")):
            return BooleanSchema()
        if lowered.startswith(("null", "none")):
            return NullSchema()
        return StringSchema()

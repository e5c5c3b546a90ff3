# application/services/curl_parser.py
from __future__ import annotations

import base64
import json
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from domain.exceptions import ParseError
from domain.template import BODY_REQUIRED_METHODS, HttpMethod, RequestTemplate

_LINE_CONTINUATION = re.compile(r"\\\r?\n[ \t]*")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
# bash の $'...' (ブラウザの "Copy as cURL" が出す)
_ANSI_C_ESCAPE = re.compile(r"\\(x[0-9a-fA-F]{1,2}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[0-7]{1,3}|.)")
_ANSI_C_SIMPLE = {
    "n": "\n", "t": "\t", "r": "\r", "a": "\a", "b": "\b",
    "f": "\f", "v": "\v", "e": "\x1b", "E": "\x1b",
    "\\": "\\", "'": "'", '"': '"', "?": "?",
}

_METHOD_FLAGS = {"-X", "--request"}
_HEADER_FLAGS = {"-H", "--header"}
_RAW_DATA_FLAGS = {"--data-raw"}
_DATA_FLAGS = {"-d", "--data", "--data-binary", "--data-ascii", "--data-urlencode"}
_JSON_FLAGS = {"--json"}
_URL_FLAGS = {"--url"}

# header として取り込むショートカット
_HEADER_SHORTCUTS = {
    "-A": "User-Agent",
    "--user-agent": "User-Agent",
    "-b": "Cookie",
    "--cookie": "Cookie",
    "-e": "Referer",
    "--referer": "Referer",
}
_USER_FLAGS = {"-u", "--user"}

# 値を取るが template には関係しないフラグ
_IGNORED_VALUE_FLAGS = {
    "-o", "--output",
    "-m", "--max-time",
    "--connect-timeout",
    "-w", "--write-out",
    "-x", "--proxy",
    "--cacert", "--cert", "--key", "--capath",
    "-c", "--cookie-jar",
    "-r", "--range",
    "-T", "--upload-file",
    "--retry", "--retry-delay", "--retry-max-time",
    "--resolve", "--interface",
    "-F", "--form",
}


@dataclass
class _Scan:
    method: Optional[str] = None
    url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    raw_data: Optional[str] = None
    data: Optional[str] = None


class CurlParser:
    """
    Turns one captured ``curl`` invocation into a RequestTemplate.

    Lenient about whitespace and line continuations, strict about the body:
    a JSON body that cannot be parsed (after one repair pass) fails the parse
    instead of silently producing broken requests for a whole run.
    """

    def parse(self, raw_command: str, allow_empty_body: bool = False) -> RequestTemplate:
        if raw_command is None or not raw_command.strip():
            raise ParseError("Invalid curl command: empty input")

        tokens = self._tokenize(raw_command)
        scan = self._scan(tokens)

        if not scan.url:
            raise ParseError("Invalid curl command: URL not found")

        method = (scan.method or HttpMethod.GET.value).upper()
        if method not in HttpMethod.__members__:
            raise ParseError(f"Unsupported HTTP method: {method}")

        body_text = scan.raw_data if scan.raw_data is not None else scan.data
        if method in BODY_REQUIRED_METHODS and body_text is None and not allow_empty_body:
            raise ParseError(f"{method} request has no body (-d/--data/--data-raw)")

        body: Any = None
        body_is_json = False
        if body_text is not None:
            body_text = _unescape(body_text)
            body = body_text
            if _is_json_content(scan.headers) and body_text:
                parsed = _parse_json_body(body_text)
                # 構造化するのは object / array だけ。スカラーは検証済みの生文字列で送る
                if isinstance(parsed, (dict, list)):
                    body = parsed
                    body_is_json = True

        return RequestTemplate(
            method=method,
            url=scan.url,
            headers=scan.headers,
            body=body,
            body_is_json=body_is_json,
        )

    def _tokenize(self, raw_command: str) -> List[str]:
        normalized = _LINE_CONTINUATION.sub(" ", raw_command.strip())
        normalized = _expand_ansi_c_quotes(normalized)
        try:
            tokens = shlex.split(normalized, posix=True)
        except ValueError as e:
            raise ParseError(f"Invalid curl command: {e}")
        if tokens and tokens[0].lower() in ("curl", "curl.exe"):
            tokens = tokens[1:]
        return tokens

    def _scan(self, tokens: List[str]) -> _Scan:
        scan = _Scan()
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            flag, value, consumed = _split_flag(tokens, i)

            if flag is None:
                # 最初の位置引数を URL とする
                if scan.url is None:
                    scan.url = tok
                i += 1
                continue

            i += consumed
            if flag in _METHOD_FLAGS:
                scan.method = value
            elif flag in _URL_FLAGS:
                scan.url = value
            elif flag in _HEADER_FLAGS:
                _add_header(scan.headers, value)
            elif flag in _RAW_DATA_FLAGS:
                scan.raw_data = _join_data(scan.raw_data, value)
            elif flag in _DATA_FLAGS:
                scan.data = _join_data(scan.data, value)
            elif flag in _JSON_FLAGS:
                scan.data = _join_data(scan.data, value)
                _default_header(scan.headers, "Content-Type", "application/json")
                _default_header(scan.headers, "Accept", "application/json")
            elif flag in _HEADER_SHORTCUTS:
                scan.headers[_HEADER_SHORTCUTS[flag]] = value or ""
            elif flag in _USER_FLAGS:
                token = base64.b64encode((value or "").encode("utf-8")).decode("ascii")
                scan.headers["Authorization"] = f"Basic {token}"
        return scan


def _split_flag(tokens: List[str], i: int) -> Tuple[Optional[str], Optional[str], int]:
    """
    Returns (flag, value, tokens consumed). flag is None for positional tokens.
    """
    tok = tokens[i]
    if not tok.startswith("-") or tok == "-":
        return None, None, 1

    # --flag=value
    if tok.startswith("--") and "=" in tok:
        name, _, value = tok.partition("=")
        return name, value, 1

    takes_value = (
        tok in _METHOD_FLAGS
        or tok in _URL_FLAGS
        or tok in _HEADER_FLAGS
        or tok in _RAW_DATA_FLAGS
        or tok in _DATA_FLAGS
        or tok in _JSON_FLAGS
        or tok in _HEADER_SHORTCUTS
        or tok in _USER_FLAGS
        or tok in _IGNORED_VALUE_FLAGS
    )
    if takes_value:
        value = tokens[i + 1] if i + 1 < len(tokens) else None
        return tok, value, 2

    # -XPOST, -H'Accept: x' のような連結形式
    if len(tok) > 2 and not tok.startswith("--"):
        short = tok[:2]
        if short in _METHOD_FLAGS or short in _HEADER_FLAGS or short in _DATA_FLAGS or short in _HEADER_SHORTCUTS:
            return short, tok[2:], 1

    # 値を取らないスイッチ (-k, -L, -s, --compressed ...)
    return tok, None, 1


def _add_header(headers: Dict[str, str], raw: Optional[str]) -> None:
    if not raw:
        return
    # 値に ":" を含められるよう最初のコロンだけで分割
    name, sep, value = raw.partition(":")
    if not sep:
        return
    headers[name.strip()] = value.strip()


def _default_header(headers: Dict[str, str], name: str, value: str) -> None:
    if not any(k.lower() == name.lower() for k in headers):
        headers[name] = value


def _join_data(current: Optional[str], value: Optional[str]) -> str:
    value = value or ""
    if current is None:
        return value
    # curl は複数の -d を & で連結する
    return f"{current}&{value}"


def _unescape(text: str) -> str:
    return (
        text.replace("\\n", "\n")
        .replace('\\"', '"')
        .replace("\\'", "'")
        .replace("\\\\", "\\")
        .strip()
    )


def _is_json_content(headers: Dict[str, str]) -> bool:
    for k, v in headers.items():
        if k.lower() == "content-type":
            return "json" in v.lower()
    return False


def _parse_json_body(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # 修復は一度だけ: 末尾カンマと生の改行を取り除いて再試行
    repaired = _TRAILING_COMMA.sub(r"\1", text)
    repaired = re.sub(r"\r", "", repaired)
    repaired = re.sub(r"\n\s*", "", repaired).strip()
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in request body: {e.msg} (line {e.lineno} column {e.colno})")


def _decode_ansi_c(text: str) -> str:
    def repl(m: "re.Match[str]") -> str:
        esc = m.group(1)
        if esc[0] in "xuU" and len(esc) > 1 and int(esc[1:], 16) <= 0x10FFFF:
            return chr(int(esc[1:], 16))
        if esc[0] in "01234567":
            return chr(int(esc, 8))
        return _ANSI_C_SIMPLE.get(esc, "\\" + esc)

    return _ANSI_C_ESCAPE.sub(repl, text)


def _expand_ansi_c_quotes(text: str) -> str:
    """Rewrites every $'...' outside other quotes as an ordinary shlex-quoted word."""
    out: List[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            out.append(text[i:i + 2])
            i += 2
        elif ch == "'":
            end = text.find("'", i + 1)
            end = n if end < 0 else end + 1
            out.append(text[i:end])
            i = end
        elif ch == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            out.append(text[i:j + 1])
            i = j + 1
        elif ch == "$" and text.startswith("$'", i):
            j = i + 2
            while j < n and text[j] != "'":
                j += 2 if text[j] == "\\" else 1
            if j >= n:
                # 閉じていない: shlex にエラーを任せる
                out.append(text[i:])
                break
            out.append(shlex.quote(_decode_ansi_c(text[i + 2:j])))
            i = j + 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)

"""
Search criteria compilation.

Criteria arrive as JSON, either as a list of classic IMAP search tokens
(``["UNSEEN", "SINCE", "01-Jan-2024"]``) or as a predicate object
(``{"seen": false, "since": "01-Jan-2024"}``). Both are compiled into a
plain predicate dict that clients know how to run:

- RealImapClient translates it into ``UID SEARCH`` arguments with
  :func:`to_imap_criteria`
- DummyClient and MboxClient evaluate it locally with :func:`message_matches`
"""

import json
import math
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Union

from .errors import MalformedCriteria, MissingArgument, UnsupportedToken


MATCH_ALL = {"all": True}

# Zero-argument keywords: keyword -> (predicate key, value)
FLAG_KEYWORDS = {
    "ALL": ("all", True),
    "SEEN": ("seen", True),
    "UNSEEN": ("seen", False),
    "ANSWERED": ("answered", True),
    "UNANSWERED": ("answered", False),
    "DELETED": ("deleted", True),
    "UNDELETED": ("deleted", False),
    "DRAFT": ("draft", True),
    "UNDRAFT": ("draft", False),
    "FLAGGED": ("flagged", True),
    "UNFLAGGED": ("flagged", False),
    "RECENT": ("recent", True),
    "OLD": ("old", True),
    "NEW": ("new", True),
}

# Single-argument keywords: keyword -> predicate key
VALUE_KEYWORDS = {
    "FROM": "from",
    "TO": "to",
    "CC": "cc",
    "BCC": "bcc",
    "SUBJECT": "subject",
    "BODY": "body",
    "LARGER": "larger",
    "SMALLER": "smaller",
    "BEFORE": "before",
    "ON": "on",
    "SINCE": "since",
    "SENTBEFORE": "sentBefore",
    "SENTON": "sentOn",
    "SENTSINCE": "sentSince",
    "UID": "uid",
}

NUMERIC_KEYWORDS = {"LARGER", "SMALLER"}

SYSTEM_FLAGS = {
    "seen": "\\Seen",
    "answered": "\\Answered",
    "deleted": "\\Deleted",
    "draft": "\\Draft",
    "flagged": "\\Flagged",
    "recent": "\\Recent",
}

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class TokenCriteria:
    """Criteria given as an ordered list of search tokens"""

    def __init__(self, values: list):
        self.values = values

    def compile(self) -> Dict[str, Any]:
        return tokens_to_search(flatten_search_tokens(self.values))

    def __repr__(self):
        return f"TokenCriteria({self.values!r})"


class ObjectCriteria:
    """Criteria given directly as a predicate object"""

    def __init__(self, mapping: dict):
        self.mapping = mapping

    def compile(self) -> Dict[str, Any]:
        return dict(self.mapping) if self.mapping else dict(MATCH_ALL)

    def __repr__(self):
        return f"ObjectCriteria({self.mapping!r})"


CriteriaInput = Union[TokenCriteria, ObjectCriteria]


def criteria_input_from_json(value) -> CriteriaInput:
    """Wrap a decoded JSON value as TokenCriteria or ObjectCriteria"""
    if isinstance(value, list):
        return TokenCriteria(value)
    if isinstance(value, dict):
        return ObjectCriteria(value)
    raise MalformedCriteria(
        "Search criteria JSON must describe either an array of IMAP tokens or an object.",
        value,
    )


def parse_criteria_json(text: str) -> CriteriaInput:
    """Decode criteria JSON text into a CriteriaInput"""
    if not text or not text.strip():
        raise MalformedCriteria(
            "Search criteria must not be empty. Provide JSON describing the IMAP search.",
            text,
        )
    try:
        value = json.loads(text)
    except ValueError as e:
        raise MalformedCriteria(f"Search criteria must be valid JSON. {e}", text) from e
    return criteria_input_from_json(value)


def _token_text(value) -> str:
    """Stringify a primitive the way it reads in the JSON source"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def flatten_search_tokens(value) -> List[str]:
    """
    Flatten a (possibly nested) token list into a flat list of strings.

    Nested lists are expanded in place, ``None`` entries are dropped and
    any mapping raises MalformedCriteria.
    """
    tokens = []

    def recurse(current):
        if current is None:
            return
        if isinstance(current, (list, tuple)):
            for entry in current:
                recurse(entry)
            return
        if isinstance(current, dict):
            raise MalformedCriteria(
                "Search criteria arrays may not contain nested objects.", current
            )
        tokens.append(_token_text(current))

    recurse(value)
    return tokens


def _to_number(text: str):
    """Coerce a LARGER/SMALLER argument; unparseable text becomes NaN"""
    stripped = text.strip()
    if not stripped:
        return 0
    try:
        number = float(stripped)
    except ValueError:
        return math.nan
    if number.is_integer():
        return int(number)
    return number


class _TokenCursor:
    """Single-pointer cursor over a flat token list"""

    def __init__(self, tokens: List[str]):
        self.tokens = tokens
        self.position = 0

    def exhausted(self) -> bool:
        return self.position >= len(self.tokens)

    def take(self, keyword: str = None) -> str:
        if self.exhausted():
            raise MissingArgument(f"{keyword} requires an additional value.", keyword)
        token = self.tokens[self.position]
        self.position += 1
        return token


def tokens_to_search(tokens: List[str]) -> Dict[str, Any]:
    """
    Compile a flat token list into a predicate dict.

    Tokens are matched case-insensitively but values keep their case.
    An empty token list compiles to ``{"all": True}``.
    """
    search: Dict[str, Any] = {}
    cursor = _TokenCursor(tokens)

    while not cursor.exhausted():
        raw_token = cursor.take()
        token = raw_token.upper()

        if token in FLAG_KEYWORDS:
            key, flag = FLAG_KEYWORDS[token]
            search[key] = flag
        elif token in VALUE_KEYWORDS:
            value = cursor.take(token)
            search[VALUE_KEYWORDS[token]] = _to_number(value) if token in NUMERIC_KEYWORDS else value
        elif token == "HEADER":
            header_key = cursor.take(token)
            header_value = cursor.take(token)
            if header_value.lower() == "true":
                parsed = True
            elif header_value.lower() == "false":
                parsed = False
            else:
                parsed = header_value
            search.setdefault("header", {})[header_key.lower()] = parsed
        else:
            raise UnsupportedToken(f'Unsupported search token "{raw_token}".', raw_token)

    return search if search else dict(MATCH_ALL)


def compile_criteria(criteria) -> Dict[str, Any]:
    """
    Compile any accepted criteria form into a predicate dict.

    Args:
        criteria: JSON text, a TokenCriteria/ObjectCriteria, or an already
            decoded list or dict

    Returns:
        A non-empty predicate dict
    """
    if isinstance(criteria, str):
        criteria = parse_criteria_json(criteria)
    elif isinstance(criteria, (list, tuple, dict)):
        criteria = criteria_input_from_json(list(criteria) if isinstance(criteria, tuple) else criteria)
    if not isinstance(criteria, (TokenCriteria, ObjectCriteria)):
        raise MalformedCriteria(
            "Search criteria JSON must describe either an array of IMAP tokens or an object.",
            criteria,
        )
    return criteria.compile()


# ---------------------------------------------------------------------------
# IMAP translation
# ---------------------------------------------------------------------------

IMAP_FLAG_KEYWORDS = {
    "seen": ("SEEN", ["UNSEEN"]),
    "answered": ("ANSWERED", ["UNANSWERED"]),
    "deleted": ("DELETED", ["UNDELETED"]),
    "draft": ("DRAFT", ["UNDRAFT"]),
    "flagged": ("FLAGGED", ["UNFLAGGED"]),
    "recent": ("RECENT", ["NOT", "RECENT"]),
    "old": ("OLD", ["NOT", "OLD"]),
    "new": ("NEW", ["NOT", "NEW"]),
}

IMAP_STRING_KEYS = {
    "from": "FROM",
    "to": "TO",
    "cc": "CC",
    "bcc": "BCC",
    "subject": "SUBJECT",
    "body": "BODY",
    "text": "TEXT",
}

IMAP_DATE_KEYS = {
    "before": "BEFORE",
    "on": "ON",
    "since": "SINCE",
    "sentBefore": "SENTBEFORE",
    "sentOn": "SENTON",
    "sentSince": "SENTSINCE",
}


def quote_imap_string(value) -> str:
    """Quote a value as an IMAP quoted string"""
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _parse_search_date(value):
    """Parse a search date into a date object, or None if it can't be read"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for fmt in ("%d-%b-%Y", "%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%fZ"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass

    try:
        return parsedate_to_datetime(text).date()
    except (TypeError, ValueError, IndexError):
        return None


def imap_date(value) -> str:
    """Format a search date the way IMAP expects it (``01-Jan-2024``)"""
    parsed = _parse_search_date(value)
    if parsed is None:
        # Let the server reject it with its own message
        return str(value)
    return f"{parsed.day:02d}-{MONTHS[parsed.month - 1]}-{parsed.year}"


def _imap_group(predicate: dict) -> str:
    return "(" + " ".join(to_imap_criteria(predicate)) + ")"


def to_imap_criteria(predicate: Dict[str, Any]) -> List[str]:
    """
    Translate a predicate dict into ``imaplib`` UID SEARCH arguments.

    Example:
        >>> to_imap_criteria({"seen": False, "from": "alice"})
        ['UNSEEN', 'FROM', '"alice"']
    """
    criteria: List[str] = []

    for key, value in predicate.items():
        if key == "all":
            if value:
                criteria.append("ALL")
        elif key in IMAP_FLAG_KEYWORDS:
            positive, negative = IMAP_FLAG_KEYWORDS[key]
            if value:
                criteria.append(positive)
            else:
                criteria.extend(negative)
        elif key in IMAP_STRING_KEYS:
            criteria.extend([IMAP_STRING_KEYS[key], quote_imap_string(value)])
        elif key in IMAP_DATE_KEYS:
            criteria.extend([IMAP_DATE_KEYS[key], imap_date(value)])
        elif key in ("larger", "smaller"):
            try:
                size = int(value)
            except (TypeError, ValueError, OverflowError) as e:
                raise MalformedCriteria(f"{key.upper()} requires a numeric value.", value) from e
            criteria.extend([key.upper(), str(size)])
        elif key == "uid":
            criteria.extend(["UID", str(value)])
        elif key == "keyword":
            criteria.extend(["KEYWORD", str(value)])
        elif key == "unKeyword":
            criteria.extend(["UNKEYWORD", str(value)])
        elif key == "header":
            for name, header_value in value.items():
                if header_value is True:
                    criteria.extend(["HEADER", quote_imap_string(name), '""'])
                elif header_value is False:
                    criteria.extend(["NOT", "HEADER", quote_imap_string(name), '""'])
                else:
                    criteria.extend(["HEADER", quote_imap_string(name), quote_imap_string(header_value)])
        elif key == "not":
            criteria.extend(["NOT", _imap_group(value)])
        elif key == "or":
            groups = [_imap_group(sub) for sub in value]
            if not groups:
                continue
            # IMAP OR is binary, so fold from the right
            expression = groups[-1]
            for group in reversed(groups[:-1]):
                expression = f"(OR {group} {expression})"
            criteria.append(expression)
        else:
            raise UnsupportedToken(f'Unsupported search key "{key}".', key)

    return criteria or ["ALL"]


# ---------------------------------------------------------------------------
# Local evaluation
# ---------------------------------------------------------------------------

def _uid_in_set(uid, sequence_set) -> bool:
    """Check a uid against an IMAP sequence set such as ``1:5,9,12:*``"""
    try:
        number = int(uid)
    except (TypeError, ValueError):
        return str(uid) == str(sequence_set)

    for chunk in str(sequence_set).split(","):
        chunk = chunk.strip()
        if ":" in chunk:
            start, end = chunk.split(":", 1)
            low = 0 if start == "*" else int(start)
            high = math.inf if end == "*" else int(end)
            if min(low, high) <= number <= max(low, high):
                return True
        elif chunk == "*" or (chunk and int(chunk) == number):
            return True
    return False


def _contains(haystack, needle) -> bool:
    if haystack is None:
        return False
    return str(needle).lower() in str(haystack).lower()


def _compare_dates(actual, wanted, key) -> bool:
    if actual is None or wanted is None:
        return False
    if key.endswith("efore"):
        return actual < wanted
    if key.endswith("ince"):
        return actual >= wanted
    return actual == wanted


def _matches_key(key: str, value, email) -> bool:
    flags = email.flags

    if key == "all":
        return bool(value)
    if key in SYSTEM_FLAGS:
        return (SYSTEM_FLAGS[key] in flags) == bool(value)
    if key == "old":
        return ("\\Recent" not in flags) == bool(value)
    if key == "new":
        is_new = "\\Recent" in flags and "\\Seen" not in flags
        return is_new == bool(value)
    if key in ("from", "to", "cc", "bcc", "subject"):
        return _contains(email.header(key), value)
    if key == "body":
        return _contains(email.get_body_text(), value)
    if key == "text":
        return _contains(email.get_raw().decode("utf-8", errors="replace"), value)
    if key == "larger":
        return len(email.get_raw()) > float(value)
    if key == "smaller":
        return len(email.get_raw()) < float(value)
    if key in ("before", "on", "since"):
        return _compare_dates(email.internal_date(), _parse_search_date(value), key)
    if key in ("sentBefore", "sentOn", "sentSince"):
        return _compare_dates(email.sent_date(), _parse_search_date(value), key)
    if key == "uid":
        return _uid_in_set(email.uid, value)
    if key == "keyword":
        return str(value) in flags
    if key == "unKeyword":
        return str(value) not in flags
    if key == "header":
        for name, header_value in value.items():
            present = email.header(name)
            if header_value is True or header_value == "":
                if present is None:
                    return False
            elif header_value is False:
                if present is not None:
                    return False
            elif not _contains(present, header_value):
                return False
        return True
    if key == "not":
        return not message_matches(value, email)
    if key == "or":
        return any(message_matches(sub, email) for sub in value)
    raise UnsupportedToken(f'Unsupported search key "{key}".', key)


def message_matches(predicate: Dict[str, Any], email) -> bool:
    """Evaluate a predicate dict against a locally held ParsedEmail"""
    return all(_matches_key(key, value, email) for key, value in predicate.items())

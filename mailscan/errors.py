"""
Exceptions raised while preparing an encoding scan.

Everything here is detected before the mailbox is contacted, so none of
these are worth retrying: the same input will fail the same way.
"""


class ScanError(Exception):
    """Base class for errors raised by mailscan itself"""


class CriteriaError(ScanError, ValueError):
    """Search criteria could not be compiled"""

    def __init__(self, message: str, value=None):
        super().__init__(message)
        self.value = value


class MalformedCriteria(CriteriaError):
    """Criteria JSON is invalid, or a token list contains a nested object"""


class MissingArgument(CriteriaError):
    """A keyword that needs a value was the last token"""


class UnsupportedToken(CriteriaError):
    """A token (or predicate key) is not part of the search vocabulary"""


class InvalidPattern(ScanError, ValueError):
    """The encoding pattern does not compile as a regular expression"""

    def __init__(self, message: str, pattern: str = None):
        super().__init__(message)
        self.pattern = pattern

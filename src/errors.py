"""Error taxonomy shared by the store, the relationship logic and the API."""


class FamilyTreeError(Exception):
    """Base class for family tree errors."""


class InvalidRequest(FamilyTreeError):
    """Malformed input, e.g. an edge from a member to itself."""


class NotFound(FamilyTreeError):
    """Unknown member, edge or relation code on a direct lookup."""


class Inconsistent(FamilyTreeError):
    """A relation master refers to an inverse code that does not exist."""

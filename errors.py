class InvalidInputError(ValueError):
    """A request broke a business rule; answered with 400."""


class NotFoundError(ValueError):
    """Record is missing or belongs to another user; answered with 404."""


class AuthenticationError(Exception):
    pass

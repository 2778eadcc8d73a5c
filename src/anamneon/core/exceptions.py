"""
Exceptions for the Anamneon archive core
This is placed such that there is a general error catcher
"""


class AnamneonError(Exception):
    # general container for errors
    pass


class AuthenticationError(AnamneonError):
    # raised when an auth tag does not verify (wrong password or tampered data)
    pass


class FormatError(AnamneonError):
    # raised on a malformed blob or encrypted file (field count, length, hex)
    pass


class NotAuthenticatedError(AnamneonError):
    # raised when no session key is cached for the requested user
    pass


class ConstraintError(AnamneonError):
    # raised on duplicate account email or an invalid enum value
    pass


class StorageError(AnamneonError):
    # raised if the record store fails in some way
    pass


class UserNotFoundError(AnamneonError):
    # raised when the user DNE in the DB
    pass


class RecordNotFoundError(StorageError):
    # raised when a diary entry or file record DNE for the user
    pass

"""
Exceptions for fieldcrypt
Everything derives from FieldcryptError so the CLI has one general error catcher
"""

EXIT_UNEXPECTED = 1
EXIT_USAGE = 2
EXIT_CRYPTO = 3
EXIT_IO = 4
EXIT_FORMAT = 5
EXIT_TRANSPORT = 6


class FieldcryptError(Exception):
    # general container for errors
    exit_code = EXIT_UNEXPECTED


class UsageError(FieldcryptError):
    # raised on bad or missing options
    exit_code = EXIT_USAGE


class WeakPasswordError(UsageError):
    # raised when the password is empty
    pass


class UnsupportedAlgorithmError(UsageError):
    # raised when an unknown AEAD or KDF name, or out-of-range KDF parameters, are requested
    pass


class UnsupportedFormatError(FieldcryptError):
    # raised when the input is neither CSV nor JSON
    exit_code = EXIT_FORMAT


class FieldNotFoundError(FieldcryptError):
    # raised (or reported as a warning) when a requested field is absent from a record

    def __init__(self, field: str, record_index=None):
        self.field = field
        self.record_index = record_index
        where = "" if record_index is None else f" in record {record_index}"
        super().__init__(f"field {field!r} not found{where}")


class MalformedEnvelopeError(FieldcryptError):
    # raised when an envelope does not have the expected shape
    exit_code = EXIT_CRYPTO


class ManifestError(MalformedEnvelopeError):
    # raised when the file manifest is missing or unreadable
    pass


class AuthenticationFailure(FieldcryptError):
    # raised on tag mismatch: tampered data or wrong password
    exit_code = EXIT_CRYPTO


class IOFailure(FieldcryptError):
    exit_code = EXIT_IO


class IOReadError(IOFailure):
    # raised when the input cannot be read
    pass


class IOWriteError(IOFailure):
    # raised when the output cannot be written; the original input is untouched
    pass


class TransportUnavailableError(FieldcryptError):
    # raised when no upload transport has been configured
    exit_code = EXIT_TRANSPORT

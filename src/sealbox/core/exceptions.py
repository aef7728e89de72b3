"""
Exceptions for SealBox
Every cryptographic failure surfaces as one of these so callers can catch SealBoxError
"""


class SealBoxError(Exception):
    # general container for errors
    pass


class InvalidParameterError(SealBoxError, ValueError):
    # raised on a bad key size, chunk size, cost value or other caller input
    pass


class MalformedEnvelopeError(SealBoxError):
    # raised when an envelope is structurally invalid (bad iv/salt length, unknown algorithm)
    pass


class AuthenticationFailedError(SealBoxError):
    # raised on tag mismatch: wrong password, wrong key or tampered data.
    # the message never says which one
    def __init__(self, message: str = "authentication failed"):
        super().__init__(message)


class DecryptionFailedError(AuthenticationFailedError):
    # raised when an asymmetric ciphertext does not match the private key
    def __init__(self, message: str = "decryption failed"):
        super().__init__(message)


class PayloadTooLargeError(SealBoxError):
    # raised when a payload exceeds what the public key padding scheme can carry
    pass


class OperationCancelledError(SealBoxError):
    # raised when a caller cancels a chunked operation
    pass

"""
Map httpx exceptions to transport error codes.

httpx raises its own exception classes and keeps the low-level socket or TLS
error in the exception chain. The retry conditions work on symbolic codes
(ECONNRESET, ENOTFOUND, CERT_HAS_EXPIRED, ...), so the chain is searched for
the most specific cause first and the httpx class is used as a fallback.
"""
import errno
import socket
import ssl
from typing import Iterator, Optional

import httpx

from fetch_retry_policy import TIMEOUT_ERROR_CODE


# OpenSSL X509_V_ERR_* verify codes
CERT_VERIFY_CODES = {
    9: "CERT_NOT_YET_VALID",
    10: "CERT_HAS_EXPIRED",
    18: "DEPTH_ZERO_SELF_SIGNED_CERT",
    19: "SELF_SIGNED_CERT_IN_CHAIN",
    20: "UNABLE_TO_GET_ISSUER_CERT_LOCALLY",
    21: "UNABLE_TO_VERIFY_LEAF_SIGNATURE",
    22: "CERT_CHAIN_TOO_LONG",
    23: "CERT_REVOKED",
    24: "INVALID_CA",
    25: "PATH_LENGTH_EXCEEDED",
    26: "INVALID_PURPOSE",
    27: "CERT_UNTRUSTED",
    28: "CERT_REJECTED",
    62: "HOSTNAME_MISMATCH",
}


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(current.__cause__)
        pending.append(current.__context__)


def _code_from_cause(cause: BaseException) -> Optional[str]:
    if isinstance(cause, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(cause, ssl.SSLCertVerificationError):
        return CERT_VERIFY_CODES.get(getattr(cause, "verify_code", None), "CERT_REJECTED")
    if isinstance(cause, ssl.SSLError):
        return "EPROTO"
    if isinstance(cause, OSError) and cause.errno is not None:
        return errno.errorcode.get(cause.errno)
    return None


def error_code_for(exc: BaseException) -> Optional[str]:
    """
    Get the transport error code for an exception.

    Args:
        exc: Exception raised by an httpx transport

    Returns:
        Symbolic error code, or None when the exception is not a
        transport error

    Example:
        try:
            await transport.handle_async_request(request)
        except httpx.TransportError as exc:
            code = error_code_for(exc)  # e.g. "ECONNREFUSED"
    """
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT_ERROR_CODE

    for cause in _exception_chain(exc):
        code = _code_from_cause(cause)
        if code:
            return code

    if isinstance(exc, (httpx.ConnectError, httpx.ProxyError)):
        return "ECONNREFUSED"
    if isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError)):
        return "ECONNRESET"
    if isinstance(exc, httpx.UnsupportedProtocol):
        return "ERR_UNSUPPORTED_PROTOCOL"
    if isinstance(exc, httpx.LocalProtocolError):
        return "ERR_LOCAL_PROTOCOL"
    if isinstance(exc, httpx.TransportError):
        return "ERR_TRANSPORT"
    return None

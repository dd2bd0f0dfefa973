"""
classifier.py - Turn raw failures into a retry-aware ClassifiedError.

Raw input may be None, a string, a mapping with any of {message, code,
name, logs, signature}, or an exception (solana-py, httpx, builtin). It is
normalized once into StringError | StructuredError | UnknownError and then
matched against an ordered rule list:

    1. user cancelled signing          -> wallet, not retryable
    2. wallet not connected            -> wallet, not retryable
    3. insufficient balance            -> wallet, not retryable
    4. rate limited                    -> network, retryable
    5. network failure                 -> network, retryable
    6. timeout                         -> network, retryable
    7. expired blockhash               -> transaction, retryable
    8. missing account                 -> account, not retryable
    9. program error code / name       -> program, not retryable
   10. anything else                   -> transaction, retryable

The order matters: a message can match several rules and the first wins.

Usage:
    from zol_client.errors import classify, report

    try:
        await controller.deposit(amount)
    except Exception as exc:
        err = classify(exc)
        if err.retryable:
            ...
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple

import httpx
from loguru import logger

from ..domain.models.errors import (
    ClassifiedError,
    ErrorCategory,
    RawError,
    StringError,
    StructuredError,
    UnknownError,
)
from .program_errors import CUSTOM_ERROR_OFFSET, PROGRAM_ERRORS

# =============================================================================
# PATTERNS
# =============================================================================

_CANCELLED = ("user rejected", "user cancelled", "user canceled")
_NOT_CONNECTED = ("wallet not connected", "no wallet", "wallet is null", "publickey is null")
_NO_SOL = ("no record of a prior credit", "insufficient lamports")
_NO_USDC = ("no usdc found", "no_usdc_balance")
_LOW_BALANCE = ("insufficient balance", "insufficient usdc", "balance too low", "insufficient_balance")
_RATE_LIMITED = re.compile(r"\b429\b|too many requests|rate limit")
_NETWORK = re.compile(
    r"network request failed|failed to fetch|econnrefused|enotfound|econnreset|connection refused"
    r"|connection reset|\b50[234]\b|bad gateway|service unavailable|gateway timeout"
    r"|\b(connecterror|readerror|writeerror|closeerror|remoteprotocolerror|networkerror|proxyerror)\b"
)
_TIMEOUT = ("timeout", "timed out", "etimedout")
_BLOCKHASH = ("blockhash not found", "blockhashnotfound", "block height exceeded")
_MISSING_ACCOUNT = ("does not exist", "accountnotfound", "could not find account", "invalid account data")

_HEX_CODE = re.compile(r"custom program error:\s*0x([0-9a-fA-F]+)")
_DECIMAL_CODE = re.compile(r"Error (?:Code|Number):\s*(\d+)", re.IGNORECASE)
_INSTRUCTION_CUSTOM = re.compile(r"['\"]?Custom['\"]?\s*[:(]\s*(\d+)")
_SIGNATURE = re.compile(r"signature[:\s]+([1-9A-HJ-NP-Za-km-z]{87,88})", re.IGNORECASE)

_SYMBOLIC = {
    info.name.lower(): code for code, info in PROGRAM_ERRORS.items()
}
_SYMBOLIC.update({"invalid faction": 6000, "insufficient funds": 6001, "epoch not ended": 6002})


# =============================================================================
# NORMALIZATION
# =============================================================================

def _as_logs(value: Any) -> Tuple[str, ...]:
    if value is None or isinstance(value, (str, bytes)):
        return ()
    try:
        return tuple(str(line) for line in value)
    except TypeError:
        return ()


def _from_mapping(data: Mapping[str, Any], fallback_message: str) -> StructuredError:
    logs = data.get("logs")
    nested = data.get("data")
    if logs is None and isinstance(nested, Mapping):
        logs = nested.get("logs")
    message = data.get("message")
    return StructuredError(
        message=str(message) if message else fallback_message,
        code=data.get("code"),
        name=data.get("name"),
        logs=_as_logs(logs),
        signature=data.get("signature") if isinstance(data.get("signature"), str) else None,
    )


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk the explicit cause chain (`raise ... from ...`), or an exception passed as first arg."""
    seen = {id(exc)}
    current = exc.__cause__
    if current is None and exc.args and isinstance(exc.args[0], BaseException):
        current = exc.args[0]
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def _from_exception(exc: BaseException) -> StructuredError:
    name = type(exc).__name__
    # solana-py exceptions leave str() empty and keep their text in error_msg
    message = str(exc) or getattr(exc, "error_msg", None) or name
    code = getattr(exc, "code", None)
    logs = _as_logs(getattr(exc, "logs", None))
    signature = getattr(exc, "signature", None)

    # solana-py RPCException carries the RPC error object as its first arg
    payload = exc.args[0] if exc.args else None
    if isinstance(payload, Mapping):
        structured = _from_mapping(payload, message)
        message = structured.message
        code = code if code is not None else structured.code
        logs = logs or structured.logs
    elif payload is not None and hasattr(payload, "message"):
        message = str(payload.message)
        data = getattr(payload, "data", None)
        logs = logs or _as_logs(getattr(data, "logs", None))

    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code

    # Keep every cause's class name; wrapped httpx errors often have no message
    for cause in _causes(exc):
        cause_name = type(cause).__name__
        cause_message = str(cause)
        if cause_message and cause_message not in message:
            message = f"{message} ({cause_name}: {cause_message})"
        else:
            message = f"{message} ({cause_name})"

    return StructuredError(
        message=message,
        code=code,
        name=name,
        logs=logs,
        signature=signature if isinstance(signature, str) else None,
    )


def normalize(raw: Any) -> RawError:
    """Collapse any raw failure into StringError | StructuredError | UnknownError."""
    if isinstance(raw, (StringError, StructuredError, UnknownError)):
        return raw
    if raw is None:
        return UnknownError()
    if isinstance(raw, str):
        return StringError(raw) if raw else UnknownError()
    if isinstance(raw, BaseException):
        return _from_exception(raw)
    if isinstance(raw, Mapping):
        return _from_mapping(raw, str(raw))
    message = getattr(raw, "message", None)
    return StringError(str(message) if message else str(raw))


def _text_of(err: RawError) -> str:
    if isinstance(err, StringError):
        return err.message
    if isinstance(err, StructuredError):
        parts = [err.message]
        if err.name:
            parts.append(err.name)
        return " ".join(parts)
    return ""


# =============================================================================
# PROGRAM ERRORS
# =============================================================================

def _program_code(err: RawError, text: str) -> Optional[int]:
    sources = [text]
    if isinstance(err, StructuredError):
        sources.extend(err.logs)

    for source in sources:
        match = _HEX_CODE.search(source)
        if match:
            return int(match.group(1), 16)
        match = _DECIMAL_CODE.search(source)
        if match:
            return int(match.group(1))
        match = _INSTRUCTION_CUSTOM.search(source)
        if match:
            return int(match.group(1))

    if isinstance(err, StructuredError) and isinstance(err.code, int) and not isinstance(err.code, bool):
        if err.code in PROGRAM_ERRORS or err.code >= CUSTOM_ERROR_OFFSET:
            return err.code

    lowered = " ".join(sources).lower()
    for symbol, code in _SYMBOLIC.items():
        if symbol in lowered:
            return code
    return None


def program_error(code: int) -> ClassifiedError:
    info = PROGRAM_ERRORS.get(code)
    if info is None:
        return ClassifiedError(
            category=ErrorCategory.PROGRAM,
            title="Program Error",
            message="The smart contract returned an error. Please check your inputs and try again.",
            details=f"Error code: {code}",
            retryable=False,
        )
    return ClassifiedError(
        category=ErrorCategory.PROGRAM,
        title=info.title,
        message=info.message,
        details=f"Error code: {code}",
        retryable=False,
    )


# =============================================================================
# CLASSIFICATION
# =============================================================================

def _has(text: str, needles: Iterable[str]) -> bool:
    return any(needle in text for needle in needles)


def _account_kind(text: str) -> str:
    if "user" in text:
        return "user account"
    if "token" in text:
        return "token account"
    if "game" in text:
        return "game state account"
    return "account"


def classify(raw: Any) -> ClassifiedError:
    """Total, pure mapping from any raw failure to a ClassifiedError."""
    err = normalize(raw)
    if isinstance(err, UnknownError):
        return ClassifiedError(
            category=ErrorCategory.TRANSACTION,
            title="Unknown Error",
            message="An unknown error occurred. Please try again.",
            retryable=True,
            action_label="Retry",
        )

    text = _text_of(err)
    lowered = text.lower()

    # Raised by the controller's in-flight guard; matched by type, never by message text
    if isinstance(err, StructuredError) and err.name == "AlreadyProcessingError":
        return ClassifiedError(
            category=ErrorCategory.ALREADY_PROCESSING,
            title="Transaction In Progress",
            message="Another transaction is still being processed. Wait for it to finish before starting a new one.",
            retryable=False,
        )

    # 1
    if _has(lowered, _CANCELLED):
        return ClassifiedError(
            category=ErrorCategory.WALLET,
            title="Transaction Cancelled",
            message="You cancelled the transaction. No changes were made.",
            retryable=False,
        )

    # 2
    if _has(lowered, _NOT_CONNECTED):
        return ClassifiedError(
            category=ErrorCategory.WALLET,
            title="Wallet Not Connected",
            message="Please connect your Solana wallet to continue.",
            retryable=False,
        )

    # 3
    if _has(lowered, _NO_SOL):
        return ClassifiedError(
            category=ErrorCategory.WALLET,
            title="Insufficient SOL",
            message="You need SOL in your wallet to pay for transaction fees. Please add some SOL and try again.",
            details="Transaction fees on Solana are paid in SOL. You can get devnet SOL from a faucet.",
            retryable=False,
        )
    if _has(lowered, _NO_USDC):
        return ClassifiedError(
            category=ErrorCategory.WALLET,
            title="No USDC in Wallet",
            message="You need USDC tokens to make a deposit. Visit the Faucet page to get free test USDC.",
            retryable=False,
            action_label="Go to Faucet",
        )
    if _has(lowered, _LOW_BALANCE):
        return ClassifiedError(
            category=ErrorCategory.WALLET,
            title="Insufficient Balance",
            message="You do not have enough USDC to complete this deposit.",
            details="Please check your balance or visit the Faucet to get more test USDC.",
            retryable=False,
            action_label="Go to Faucet",
        )

    # 4
    status = err.code if isinstance(err, StructuredError) else None
    if status == 429 or _RATE_LIMITED.search(lowered):
        return ClassifiedError(
            category=ErrorCategory.NETWORK,
            title="Rate Limited",
            message="Too many requests. Please wait a moment and try again.",
            retryable=True,
            action_label="Retry",
        )

    # 5
    if status in (502, 503, 504) or _NETWORK.search(lowered):
        return ClassifiedError(
            category=ErrorCategory.NETWORK,
            title="Network Error",
            message="Unable to connect to the Solana network. Please check your connection and try again.",
            details="This could be due to RPC endpoint issues or network connectivity problems.",
            retryable=True,
            action_label="Retry",
        )

    # 6
    if _has(lowered, _TIMEOUT):
        return ClassifiedError(
            category=ErrorCategory.NETWORK,
            title="Network Timeout",
            message="The request took too long to complete. This might be due to network congestion or RPC issues.",
            details="Please try again in a moment. If the problem persists, the network may be experiencing high load.",
            retryable=True,
            action_label="Retry",
        )

    # 7
    if _has(lowered, _BLOCKHASH):
        return ClassifiedError(
            category=ErrorCategory.TRANSACTION,
            title="Transaction Expired",
            message="The transaction took too long and expired. Please try again.",
            retryable=True,
            action_label="Retry",
        )

    # 8
    if _has(lowered, _MISSING_ACCOUNT):
        kind = _account_kind(lowered)
        return ClassifiedError(
            category=ErrorCategory.ACCOUNT,
            title="Account Not Found",
            message=(
                f"The required {kind} was not found on the blockchain. "
                "You may need to register or initialize your account first."
            ),
            details=f"Missing {kind}",
            retryable=False,
        )

    # 9
    code = _program_code(err, text)
    if code is not None:
        return program_error(code)

    # 10
    return ClassifiedError(
        category=ErrorCategory.TRANSACTION,
        title="Transaction Error",
        message="An error occurred while processing your transaction. Please try again.",
        details=err.message,
        retryable=True,
        action_label="Retry",
    )


def is_retryable(raw: Any) -> bool:
    return classify(raw).retryable


def extract_signature(raw: Any) -> Optional[str]:
    """Submission signature carried by the error message or its `signature` field."""
    err = normalize(raw)
    match = _SIGNATURE.search(_text_of(err))
    if match:
        return match.group(1)
    if isinstance(err, StructuredError) and err.signature:
        return err.signature
    return None


def format_details(raw: Any) -> str:
    if raw is None:
        return "No error details available"
    if not isinstance(raw, (str, BaseException, Mapping, StringError, StructuredError, UnknownError)):
        return str(raw)

    err = normalize(raw)
    if isinstance(err, UnknownError):
        return "No error details available"

    lines = []
    if err.message:
        lines.append(f"Message: {err.message}")
    if isinstance(err, StructuredError):
        if err.code is not None:
            lines.append(f"Code: {err.code}")
        if err.name:
            lines.append(f"Name: {err.name}")
    signature = extract_signature(err)
    if signature:
        lines.append(f"Signature: {signature}")
    if isinstance(err, StructuredError) and err.logs:
        lines.append("Logs: " + "\n".join(err.logs))

    return "\n".join(lines) if lines else str(raw)


def report(raw: Any, operation: Optional[str] = None) -> ClassifiedError:
    """Classify `raw` and log it. Returns the classification."""
    classified = classify(raw)
    op = operation or "-"
    signature = extract_signature(raw)
    sig = f" | sig={signature}" if signature else ""
    if classified.category == ErrorCategory.WALLET and classified.title == "Transaction Cancelled":
        logger.info(f"TX_REJECTED | op={op} | signature request declined by wallet")
    else:
        logger.error(
            f"TX_ERROR | op={op} | category={classified.category.value} | title={classified.title} | "
            f"retryable={classified.retryable}{sig}"
        )
    logger.debug(f"TX_ERROR_DETAILS | op={op}\n{format_details(raw)}")
    return classified

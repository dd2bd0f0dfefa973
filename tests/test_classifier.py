import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solders.rpc.requests import GetLatestBlockhash

from zol_client.application.services.transaction_controller import AlreadyProcessingError, NotReadyError
from zol_client.domain.models.errors import ErrorCategory, StringError, StructuredError, UnknownError
from zol_client.errors import classify, extract_signature, format_details, is_retryable, normalize, report

SIG = "5" * 88


# =============================================================================
# NORMALIZATION
# =============================================================================


def test_normalize_shapes():
    assert isinstance(normalize(None), UnknownError)
    assert isinstance(normalize(""), UnknownError)
    assert normalize("boom") == StringError("boom")

    structured = normalize({"message": "bad", "code": 7, "data": {"logs": ["a", "b"]}})
    assert structured == StructuredError(message="bad", code=7, logs=("a", "b"))


def test_normalize_exception_keeps_name_and_cause():
    try:
        try:
            raise OSError("socket closed")
        except OSError as inner:
            raise RuntimeError("send failed") from inner
    except RuntimeError as exc:
        err = normalize(exc)

    assert err.name == "RuntimeError"
    assert "send failed" in err.message
    assert "OSError: socket closed" in err.message


def test_normalize_rpc_exception_payload():
    exc = Exception({"code": -32002, "message": "Transaction simulation failed", "data": {"logs": ["log 1"]}})
    err = normalize(exc)
    assert err.message == "Transaction simulation failed"
    assert err.code == -32002
    assert err.logs == ("log 1",)


# =============================================================================
# RULES
# =============================================================================


def test_hex_custom_program_error():
    result = classify({"message": "Transaction simulation failed: custom program error: 0x1770"})
    assert result.category == ErrorCategory.PROGRAM
    assert result.title == "Invalid Faction"
    assert result.retryable is False
    assert result.details == "Error code: 6000"


def test_null_is_unknown_and_retryable():
    result = classify(None)
    assert result.title == "Unknown Error"
    assert result.category == ErrorCategory.TRANSACTION
    assert result.retryable is True
    assert result.action_label == "Retry"


def test_user_rejected():
    result = classify(Exception("User rejected the request."))
    assert result.category == ErrorCategory.WALLET
    assert result.title == "Transaction Cancelled"
    assert result.retryable is False


def test_wallet_not_connected():
    result = classify(NotReadyError())
    assert result.title == "Wallet Not Connected"
    assert result.retryable is False


def test_insufficient_lamports():
    result = classify("Attempt to debit an account but found no record of a prior credit.")
    assert result.title == "Insufficient SOL"
    assert result.category == ErrorCategory.WALLET


@pytest.mark.parametrize(
    "message,title",
    [
        ("No USDC found in your wallet. Please get some USDC from the faucet first.", "No USDC in Wallet"),
        ("Insufficient USDC balance. Required: 5.00 USDC, Available: 1.00 USDC", "Insufficient Balance"),
    ],
)
def test_balance_errors_point_to_faucet(message, title):
    result = classify(message)
    assert result.title == title
    assert result.action_label == "Go to Faucet"
    assert result.retryable is False


def test_rate_limited():
    result = classify("HTTP 429: Too Many Requests")
    assert result.title == "Rate Limited"
    assert result.retryable is True


def test_http_status_codes():
    request = httpx.Request("POST", "https://rpc.test")
    too_many = httpx.HTTPStatusError("rejected", request=request, response=httpx.Response(429, request=request))
    unavailable = httpx.HTTPStatusError("rejected", request=request, response=httpx.Response(503, request=request))

    assert classify(too_many).title == "Rate Limited"
    assert classify(unavailable).title == "Network Error"


def test_httpx_connect_error_is_network():
    result = classify(httpx.ConnectError("[Errno 111]"))
    assert result.category == ErrorCategory.NETWORK
    assert result.title == "Network Error"
    assert result.retryable is True


def test_httpx_read_timeout_is_timeout():
    result = classify(httpx.ReadTimeout("read"))
    assert result.title == "Network Timeout"
    assert result.retryable is True


def _wrapped_rpc_error(inner):
    try:
        raise SolanaRpcException(inner, None, None, GetLatestBlockhash()) from inner
    except SolanaRpcException as exc:
        return exc


def test_solana_rpc_exception_around_empty_read_timeout():
    result = classify(_wrapped_rpc_error(httpx.ReadTimeout("")))
    assert result.category == ErrorCategory.NETWORK
    assert result.title == "Network Timeout"
    assert result.retryable is True


def test_solana_rpc_exception_around_empty_connect_error():
    result = classify(_wrapped_rpc_error(httpx.ConnectError("")))
    assert result.title == "Network Error"
    assert result.retryable is True


def test_empty_cause_keeps_class_name():
    try:
        raise RuntimeError("wrapper") from httpx.ReadTimeout("")
    except RuntimeError as exc:
        assert "(ReadTimeout)" in normalize(exc).message


def test_expired_blockhash():
    result = classify({"message": "Transaction simulation failed: Blockhash not found"})
    assert result.title == "Transaction Expired"
    assert result.category == ErrorCategory.TRANSACTION
    assert result.retryable is True


def test_missing_account_names_the_kind():
    result = classify("AccountNotFound: user position does not exist")
    assert result.category == ErrorCategory.ACCOUNT
    assert result.details == "Missing user account"
    assert result.retryable is False


def test_decimal_error_code():
    result = classify("AnchorError occurred. Error Code: EpochNotEnded. Error Number: 6002.")
    assert result.title == "Epoch Not Ended"


def test_unknown_program_code():
    result = classify("custom program error: 0x1797")
    assert result.title == "Program Error"
    assert result.details == "Error code: 6039"
    assert result.retryable is False


def test_program_code_from_logs():
    result = classify(
        {
            "message": "Transaction simulation failed",
            "logs": ["Program log: Instruction: Withdraw", "Program failed: custom program error: 0x1771"],
        }
    )
    assert result.title == "Insufficient Funds"


def test_program_code_field():
    assert classify({"message": "program failed", "code": 6002}).title == "Epoch Not Ended"


def test_instruction_error_repr():
    result = classify("Transaction failed: {'InstructionError': [0, {'Custom': 6000}]}")
    assert result.title == "Invalid Faction"


def test_fallback_keeps_message():
    result = classify("Something odd happened")
    assert result.title == "Transaction Error"
    assert result.details == "Something odd happened"
    assert result.retryable is True
    assert result.action_label == "Retry"


def test_already_processing():
    result = classify(AlreadyProcessingError("Deposit rejected: Withdraw is already processing"))
    assert result.category == ErrorCategory.ALREADY_PROCESSING
    assert result.retryable is False


def test_user_rejection_mentioning_processing_is_cancelled():
    result = classify("User rejected the request: wallet already processing another request")
    assert result.category == ErrorCategory.WALLET
    assert result.title == "Transaction Cancelled"
    assert result.retryable is False


def test_first_matching_rule_wins():
    # both a cancellation and a rate-limit; cancellation comes first
    assert classify("User rejected the request (429)").title == "Transaction Cancelled"
    # timeout text inside a network failure
    assert classify("connection refused after timeout").title == "Network Error"


def test_is_retryable():
    assert is_retryable("Too many requests") is True
    assert is_retryable("custom program error: 0x1770") is False


# =============================================================================
# HELPERS
# =============================================================================


def test_extract_signature():
    assert extract_signature(f"Transaction failed. Signature: {SIG}") == SIG
    assert extract_signature({"message": "failed", "signature": SIG}) == SIG
    assert extract_signature("no signature here") is None


def test_format_details():
    assert format_details(None) == "No error details available"
    assert format_details(42) == "42"

    text = format_details({"message": "boom", "code": 6000, "name": "AnchorError", "logs": ["l1", "l2"]})
    assert text.splitlines() == ["Message: boom", "Code: 6000", "Name: AnchorError", "Logs: l1", "l2"]


def test_report_returns_classification():
    assert report("User rejected", "Deposit").title == "Transaction Cancelled"
    assert report("custom program error: 0x1770", "Register user").title == "Invalid Faction"

import pytest

from ahl_allah.exceptions import ValidationError, TooManyRequests
from ahl_allah.utils import sha256_hex

PHONE = "+15550001111"


def _issue(ledger, purpose="login"):
    return ledger.issue("phone", PHONE, purpose, ttl_minutes=5)


def test_codes_are_six_digits_and_stored_hashed(ledger, otp_repo):
    code = _issue(ledger)
    assert len(code) == 6 and code.isdigit()
    assert 100000 <= int(code) <= 999999
    row = otp_repo.get_active(PHONE)
    assert row.code_hash == sha256_hex(code)
    assert code not in row.code_hash


def test_second_request_inside_interval_is_throttled(ledger):
    _issue(ledger)
    with pytest.raises(TooManyRequests) as exc:
        _issue(ledger)
    assert exc.value.detail == "Please wait before requesting another OTP"


def test_resend_after_interval_replaces_code_in_place(ledger, otp_repo, clock):
    first = _issue(ledger)
    clock.advance(seconds=61)
    second = _issue(ledger)

    assert len(otp_repo.rows) == 1
    row = otp_repo.rows[0]
    assert row.resend_count == 1
    assert row.code_hash == sha256_hex(second)
    if first != second:
        with pytest.raises(ValidationError):
            ledger.check(PHONE, first)


def test_resend_ceiling(ledger, clock):
    _issue(ledger)
    for _ in range(3):
        clock.advance(seconds=61)
        _issue(ledger)
    clock.advance(seconds=61)
    with pytest.raises(TooManyRequests) as exc:
        _issue(ledger)
    assert exc.value.detail == "Resend limit reached"


def test_expired_challenge_is_superseded_by_new_row(ledger, otp_repo, clock):
    _issue(ledger)
    clock.advance(minutes=6)
    _issue(ledger)
    assert len(otp_repo.rows) == 2
    assert otp_repo.rows[0].consumed is True
    assert otp_repo.rows[1].resend_count == 0


def test_other_purpose_creates_new_challenge(ledger, otp_repo, clock):
    _issue(ledger, "login")
    clock.advance(seconds=61)
    _issue(ledger, "link")
    assert [r.purpose for r in otp_repo.rows] == ["login", "link"]
    assert otp_repo.get_active(PHONE).purpose == "link"


def test_wrong_code_counts_attempt_and_correct_code_consumes(ledger, otp_repo):
    code = _issue(ledger)
    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(ValidationError) as exc:
        ledger.check(PHONE, wrong)
    assert exc.value.detail == "Invalid OTP"
    assert otp_repo.rows[0].attempts_used == 1

    challenge = ledger.check(PHONE, code)
    assert challenge.consumed is True


def test_replay_of_consumed_code_fails(ledger):
    code = _issue(ledger)
    ledger.check(PHONE, code)
    with pytest.raises(ValidationError) as exc:
        ledger.check(PHONE, code)
    assert exc.value.detail == "No active OTP found"


def test_attempt_ceiling_blocks_even_correct_code(ledger):
    code = _issue(ledger)
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(5):
        with pytest.raises(ValidationError):
            ledger.check(PHONE, wrong)
    with pytest.raises(TooManyRequests) as exc:
        ledger.check(PHONE, code)
    assert exc.value.detail == "Maximum verification attempts reached"


def test_resend_keeps_attempt_budget(ledger, otp_repo, clock):
    code = _issue(ledger)
    wrong = "000000" if code != "000000" else "111111"
    for _ in range(2):
        with pytest.raises(ValidationError):
            ledger.check(PHONE, wrong)
    clock.advance(seconds=61)
    _issue(ledger)
    assert otp_repo.rows[0].attempts_used == 2


def test_expired_code_fails(ledger, clock):
    code = _issue(ledger)
    clock.advance(minutes=5, seconds=1)
    with pytest.raises(ValidationError) as exc:
        ledger.check(PHONE, code)
    assert exc.value.detail == "OTP expired"


def test_check_without_consume_leaves_challenge_active(ledger, otp_repo):
    code = ledger.issue("email", "a@example.com", "password_reset", ttl_minutes=10, throttle=False)
    ledger.check("a@example.com", code, purpose="password_reset", consume=False)
    assert otp_repo.get_active("a@example.com") is not None


def test_fresh_issue_starts_a_new_attempt_budget(ledger, otp_repo):
    code = ledger.issue("email", "m@example.com", "password_reset", ttl_minutes=10, throttle=False)
    for _ in range(5):
        with pytest.raises(ValidationError):
            ledger.check("m@example.com", "000000" if code != "000000" else "111111")
    fresh = ledger.issue("email", "m@example.com", "password_reset", ttl_minutes=10, throttle=False, fresh=True)
    assert otp_repo.rows[0].consumed is True
    assert otp_repo.rows[1].attempts_used == 0
    ledger.check("m@example.com", fresh)

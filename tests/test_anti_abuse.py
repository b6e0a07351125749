from funnel.schemas.lead import LeadRecord
from funnel.services.anti_abuse import (
    check_duplicate_submission,
    check_rate_limit,
    fingerprint,
    is_duplicate,
    issue_form_token,
    rate_limit_allows,
    validate_form_token,
)
from funnel.services.session_state import SessionState

NOW = 1_700_000_000.0


def make_record(**overrides) -> LeadRecord:
    fields = {
        "email": "alice@example.com",
        "brand": "Acme",
        "submittedAt": "2024-01-01T00:00:00+00:00",
    }
    fields.update(overrides)
    return LeadRecord(**fields)


def test_rate_limit_allows_three_then_blocks():
    state = SessionState()
    assert check_rate_limit(state, NOW)
    assert check_rate_limit(state, NOW + 1)
    assert check_rate_limit(state, NOW + 2)
    assert not check_rate_limit(state, NOW + 3)
    # A rejected attempt is not recorded
    assert len(state.submission_times) == 3


def test_rate_limit_window_slides():
    state = SessionState()
    for offset in (0, 10, 20):
        assert check_rate_limit(state, NOW + offset)

    # Entry at exactly now - window is evicted
    assert check_rate_limit(state, NOW + 60)
    assert not check_rate_limit(state, NOW + 61)
    assert check_rate_limit(state, NOW + 70.5)


def test_rate_limit_custom_policy():
    state = SessionState()
    assert check_rate_limit(state, NOW, window_seconds=10, max_submissions=1)
    assert not check_rate_limit(state, NOW + 5, window_seconds=10, max_submissions=1)
    assert check_rate_limit(state, NOW + 11, window_seconds=10, max_submissions=1)


def test_form_token_missing_fails():
    state = SessionState()
    assert validate_form_token(state, "leadForm", NOW) is False


def test_form_token_too_fast_is_kept():
    state = SessionState()
    issue_form_token(state, "leadForm", NOW)

    assert validate_form_token(state, "leadForm", NOW + 2.9) is False
    assert state.get_token("leadForm") is not None
    assert validate_form_token(state, "leadForm", NOW + 3) is True


def test_form_token_single_use():
    state = SessionState()
    token = issue_form_token(state, "leadForm", NOW)

    assert validate_form_token(state, "leadForm", NOW + 5, token=token) is True
    assert state.get_token("leadForm") is None
    assert validate_form_token(state, "leadForm", NOW + 6, token=token) is False


def test_form_token_stale_is_discarded():
    state = SessionState()
    issue_form_token(state, "leadForm", NOW)

    assert validate_form_token(state, "leadForm", NOW + 3600.5) is False
    assert state.get_token("leadForm") is None


def test_form_token_at_max_age_passes():
    state = SessionState()
    issue_form_token(state, "leadForm", NOW)
    assert validate_form_token(state, "leadForm", NOW + 3600) is True


def test_form_token_mismatch_fails():
    state = SessionState()
    issue_form_token(state, "leadForm", NOW)
    assert validate_form_token(state, "leadForm", NOW + 5, token="forged") is False


def test_form_tokens_are_per_form():
    state = SessionState()
    main_token = issue_form_token(state, "leadForm", NOW)
    audit_token = issue_form_token(state, "auditLeadForm", NOW)

    assert main_token != audit_token
    assert validate_form_token(state, "auditLeadForm", NOW + 5, token=audit_token) is True
    assert validate_form_token(state, "leadForm", NOW + 5, token=main_token) is True


def test_reissue_replaces_token():
    state = SessionState()
    first = issue_form_token(state, "leadForm", NOW)
    second = issue_form_token(state, "leadForm", NOW + 1)

    assert validate_form_token(state, "leadForm", NOW + 10, token=first) is False
    assert validate_form_token(state, "leadForm", NOW + 10, token=second) is True


def test_fingerprint_ignores_submit_time():
    a = make_record(submittedAt="2024-01-01T00:00:00+00:00")
    b = make_record(submittedAt="2024-01-01T00:05:00+00:00")
    assert fingerprint(a) == fingerprint(b)
    assert len(fingerprint(a)) == 64


def test_fingerprint_differs_on_content():
    assert fingerprint(make_record()) != fingerprint(make_record(brand="Other"))
    assert fingerprint(make_record()) != fingerprint(make_record(sheetName="audit"))


def test_duplicate_rejects_only_consecutive_repeat():
    state = SessionState()
    first = make_record()
    second = make_record(email="bob@example.com")

    assert check_duplicate_submission(state, first) is True
    assert check_duplicate_submission(state, first) is False
    assert check_duplicate_submission(state, second) is True
    # Only the previous submission is remembered
    assert check_duplicate_submission(state, first) is True


def test_rate_limit_allows_records_nothing():
    state = SessionState(submission_times=[NOW - 120, NOW - 10])
    assert rate_limit_allows(state, NOW) is True
    assert state.submission_times == [NOW - 10]


def test_is_duplicate_does_not_remember():
    state = SessionState()
    record = make_record()
    assert is_duplicate(state, record) is False
    assert state.last_fingerprint is None

    state.remember_fingerprint(fingerprint(record))
    assert is_duplicate(state, record) is True

from uuid import uuid4

import pytest

from npt_onboarding.core.models.auth import AdminResolution, AdminUser
from npt_onboarding.onboarding.services.route_policy import (
    NO_EMPLOYEE_SESSION,
    EmployeeResolution,
    EmployeeSessionState,
    decide_route,
    is_guarded_path,
)

ADMIN = AdminResolution(user=AdminUser(id="hr-1", email="hr@npt.example", name="Hannah Rao"))
ANONYMOUS = AdminResolution()
STALE_ADMIN = AdminResolution(has_invalid_cookie=True)
ONBOARDING_ID = str(uuid4())
EMPLOYEE = EmployeeResolution(EmployeeSessionState.ACTIVE, onboarding_id=ONBOARDING_ID, has_cookie=True)
DEAD_EMPLOYEE = EmployeeResolution(EmployeeSessionState.NONE, has_cookie=True)
UNKNOWN_EMPLOYEE = EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)


def _decide(path, admin=ANONYMOUS, employee=NO_EMPLOYEE_SESSION, query=""):
    return decide_route(
        path,
        query,
        admin,
        employee,
        admin_cookie_name="npt_admin_session",
        employee_cookie_name="npt_onboarding_session",
    )


@pytest.mark.parametrize(
    "admin,employee,expected",
    [
        (ADMIN, NO_EMPLOYEE_SESSION, "/dashboard"),
        (ADMIN, EMPLOYEE, "/dashboard"),
        (ANONYMOUS, EMPLOYEE, f"/onboarding/{ONBOARDING_ID}"),
        (ANONYMOUS, NO_EMPLOYEE_SESSION, "/login"),
    ],
)
def test_root_redirects_by_identity(admin, employee, expected):
    assert _decide("/", admin, employee).redirect_to == expected


def test_login_page_is_open_to_anonymous_visitors():
    decision = _decide("/login")
    assert decision.allowed
    assert decision.clear_cookies == []


def test_login_page_sends_signed_in_users_home():
    assert _decide("/login", ADMIN).redirect_to == "/dashboard"
    assert _decide("/login", employee=EMPLOYEE).redirect_to == f"/onboarding/{ONBOARDING_ID}"


def test_dashboard_requires_admin_and_keeps_callback():
    decision = _decide("/dashboard/onboardings", employee=EMPLOYEE, query="status=Submitted")
    assert decision.redirect_to == "/login?callbackUrl=%2Fdashboard%2Fonboardings%3Fstatus%3DSubmitted"
    assert _decide("/dashboard", ADMIN).allowed


def test_admin_on_employee_page_goes_to_dashboard():
    assert _decide(f"/onboarding/{ONBOARDING_ID}", ADMIN).redirect_to == "/dashboard"


def test_employee_is_kept_on_their_own_onboarding():
    assert _decide(f"/onboarding/{ONBOARDING_ID}", employee=EMPLOYEE).allowed
    assert _decide(f"/onboarding/{ONBOARDING_ID.upper()}", employee=EMPLOYEE).allowed
    other = str(uuid4())
    assert _decide(f"/onboarding/{other}", employee=EMPLOYEE).redirect_to == f"/onboarding/{ONBOARDING_ID}"


def test_dead_session_is_cleared_and_sent_to_invite_entry():
    decision = _decide(f"/onboarding/{ONBOARDING_ID}", employee=DEAD_EMPLOYEE)
    assert decision.redirect_to == "/onboarding"
    assert decision.clear_cookies == ["npt_onboarding_session"]
    assert decision.set_cookie_headers()[0].startswith("npt_onboarding_session=;")


def test_unknown_session_state_is_let_through_untouched():
    decision = _decide(f"/onboarding/{ONBOARDING_ID}", employee=UNKNOWN_EMPLOYEE)
    assert decision.allowed
    assert decision.clear_cookies == []


def test_invalid_admin_cookie_is_cleared():
    decision = _decide("/dashboard", STALE_ADMIN)
    assert decision.redirect_to.startswith("/login?callbackUrl=")
    assert decision.clear_cookies == ["npt_admin_session"]


def test_both_cookies_can_be_cleared_together():
    decision = _decide("/", STALE_ADMIN, DEAD_EMPLOYEE)
    assert decision.redirect_to == "/login"
    assert decision.clear_cookies == ["npt_admin_session", "npt_onboarding_session"]


def test_non_uuid_onboarding_paths_pass_through():
    assert _decide("/onboarding/not-a-uuid", ADMIN).allowed
    assert _decide("/onboarding").allowed


def test_guarded_paths():
    assert is_guarded_path("/")
    assert is_guarded_path("/login/")
    assert is_guarded_path("/dashboard/onboardings/123")
    assert is_guarded_path(f"/onboarding/{ONBOARDING_ID}")
    assert not is_guarded_path("/onboarding")
    assert not is_guarded_path("/api/v1/onboarding/session/resolve")
    assert not is_guarded_path("/health")
    assert not is_guarded_path(f"/onboarding/{ONBOARDING_ID}/print")

import pytest

from carebook.core.authorization import (
    DenyReason, OwnerOrRoleIn, RoleIn, authorize, enforce, require
)
from carebook.core.exceptions import ForbiddenError, UnauthenticatedError
from carebook.core.security import Identity, Role


def identity(actor_id, role):
    return Identity(actor_id=actor_id, role=role)


COORDINATOR = identity(1, Role.COORDINATOR)
CLINICIAN = identity(2, Role.CLINICIAN)
CLIENT = identity(3, Role.CLIENT)
OTHER_CLIENT = identity(4, Role.CLIENT)


class TestRoleIn:

    def test_listed_role_allowed(self):
        assert authorize(CLIENT, RoleIn({Role.CLIENT})).allowed

    def test_coordinator_not_implied(self):
        decision = authorize(COORDINATOR, RoleIn({Role.CLINICIAN}))
        assert not decision.allowed
        assert decision.reason == DenyReason.FORBIDDEN

    def test_roles_accept_plain_values(self):
        assert authorize(CLINICIAN, RoleIn(["clinician"])).allowed


class TestOwnerOrRoleIn:

    appointment = {"client_id": 3, "clinician_id": 2}

    def test_owner_allowed(self):
        assert authorize(CLIENT, OwnerOrRoleIn(set(), "client_id"), self.appointment).allowed

    def test_non_owner_client_denied(self):
        decision = authorize(OTHER_CLIENT, OwnerOrRoleIn({Role.CLINICIAN}, "client_id"), self.appointment)
        assert not decision.allowed
        assert decision.reason == DenyReason.FORBIDDEN

    def test_listed_role_allowed_without_ownership(self):
        other = identity(99, Role.CLINICIAN)
        assert authorize(other, OwnerOrRoleIn({Role.CLINICIAN}, "client_id"), self.appointment).allowed

    def test_coordinator_always_allowed(self):
        assert authorize(COORDINATOR, OwnerOrRoleIn(set(), "client_id"), self.appointment).allowed

    def test_any_owner_field_matches(self):
        policy = OwnerOrRoleIn(set(), ("client_id", "clinician_id"))
        assert authorize(CLINICIAN, policy, self.appointment).allowed
        assert authorize(CLIENT, policy, self.appointment).allowed
        assert not authorize(OTHER_CLIENT, policy, self.appointment).allowed

    def test_object_resource(self):
        class Record:
            client_id = 3
            clinician_id = None

        assert authorize(CLIENT, OwnerOrRoleIn(set(), "client_id"), Record()).allowed
        assert not authorize(CLINICIAN, OwnerOrRoleIn(set(), "clinician_id"), Record()).allowed

    def test_missing_resource_denied(self):
        assert not authorize(CLIENT, OwnerOrRoleIn(set(), "client_id")).allowed


class TestEnforcement:

    def test_no_identity_is_unauthenticated(self):
        decision = authorize(None, RoleIn({Role.CLIENT}))
        assert decision.reason == DenyReason.UNAUTHENTICATED
        with pytest.raises(UnauthenticatedError) as exc:
            enforce(decision)
        assert exc.value.status_code == 401

    def test_denied_role_is_forbidden(self):
        with pytest.raises(ForbiddenError) as exc:
            require(CLIENT, RoleIn({Role.COORDINATOR}))
        assert exc.value.status_code == 403

    def test_require_returns_identity(self):
        assert require(CLIENT, RoleIn({Role.CLIENT})) is CLIENT

    def test_unknown_policy_type(self):
        with pytest.raises(TypeError):
            authorize(CLIENT, object())

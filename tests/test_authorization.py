import uuid

import pytest

from core.errors import Forbidden, ValidationFailed
from models.enums import PropertyRole, RequestStatus, ResourceType, TemplateStatus, UserRole
from policy.authorization import Action, ActorContext, Grant, Target, authorize
from policy.request_lifecycle import (
    TransitionActor,
    can_transition,
    check_feedback_allowed,
    check_request_transition,
    check_template_transition,
)

P1 = uuid.uuid4()
P2 = uuid.uuid4()
U1 = uuid.uuid4()
U2 = uuid.uuid4()


def actor(role, *grants):
    return ActorContext(user_id=uuid.uuid4(), role=role, grants=tuple(grants))


def grant(property_id, *roles, unit_id=None):
    return Grant(property_id=property_id, unit_id=unit_id, roles=frozenset(r.value for r in roles))


class TestAuthorize:
    def test_admin_bypasses_everything(self):
        admin = actor(UserRole.ADMIN)
        decision = authorize(admin, Action.DELETE, Target(kind=ResourceType.PROPERTY, property_id=P2))
        assert decision.allow
        assert decision.reason == "admin"

    def test_landlord_scoped_to_own_property(self):
        landlord = actor(UserRole.LANDLORD, grant(P1, PropertyRole.LANDLORD))
        assert authorize(landlord, Action.UPDATE, Target(kind=ResourceType.PROPERTY, property_id=P1))
        denied = authorize(landlord, Action.DELETE, Target(kind=ResourceType.PROPERTY, property_id=P2))
        assert not denied
        assert "no active management association" in denied.reason

    def test_property_manager_role_counts_as_management(self):
        pm = actor(UserRole.PROPERTY_MANAGER, grant(P1, PropertyRole.PROPERTY_MANAGER))
        assert authorize(pm, Action.CREATE, Target(kind=ResourceType.LEASE, property_id=P1, unit_id=U1))

    def test_unit_from_other_property_is_denied(self):
        landlord = actor(UserRole.LANDLORD, grant(P1, PropertyRole.LANDLORD))
        target = Target(
            kind=ResourceType.LEASE, property_id=P1, unit_id=U2, unit_property_id=P2
        )
        decision = authorize(landlord, Action.CREATE, target)
        assert not decision
        assert decision.reason == "unit does not belong to property"

    def test_tenant_creates_request_only_for_own_unit(self):
        tenant = actor(UserRole.TENANT, grant(P1, PropertyRole.TENANT, unit_id=U1))
        own = Target(kind=ResourceType.REQUEST, property_id=P1, unit_id=U1)
        other = Target(kind=ResourceType.REQUEST, property_id=P1, unit_id=U2)
        assert authorize(tenant, Action.CREATE, own)
        assert not authorize(tenant, Action.CREATE, other)

    def test_tenant_cannot_assign_requests(self):
        tenant = actor(UserRole.TENANT, grant(P1, PropertyRole.TENANT, unit_id=U1))
        target = Target(
            kind=ResourceType.REQUEST, property_id=P1, unit_id=U1, created_by_id=tenant.user_id
        )
        assert not authorize(tenant, Action.ASSIGN, target)

    def test_tenant_sees_only_own_lease(self):
        tenant = actor(UserRole.TENANT, grant(P1, PropertyRole.TENANT, unit_id=U1))
        mine = Target(kind=ResourceType.LEASE, property_id=P1, unit_id=U1, tenant_id=tenant.user_id)
        theirs = Target(kind=ResourceType.LEASE, property_id=P1, unit_id=U1, tenant_id=uuid.uuid4())
        assert authorize(tenant, Action.VIEW, mine)
        assert not authorize(tenant, Action.VIEW, theirs)
        assert not authorize(tenant, Action.UPDATE, mine)

    def test_property_grants_outrank_global_role(self):
        tenant = actor(
            UserRole.TENANT,
            grant(P1, PropertyRole.TENANT, unit_id=U1),
            grant(P2, PropertyRole.PROPERTY_MANAGER),
        )
        assert authorize(tenant, Action.CREATE, Target(kind=ResourceType.UNIT, property_id=P2))
        assert not authorize(tenant, Action.CREATE, Target(kind=ResourceType.UNIT, property_id=P1))

    def test_landlord_renting_elsewhere_sees_own_lease(self):
        landlord = actor(
            UserRole.LANDLORD,
            grant(P1, PropertyRole.LANDLORD),
            grant(P2, PropertyRole.TENANT, unit_id=U2),
        )
        lease = Target(
            kind=ResourceType.LEASE, property_id=P2, unit_id=U2, tenant_id=landlord.user_id
        )
        assert authorize(landlord, Action.VIEW, lease)
        assert not authorize(landlord, Action.UPDATE, lease)

    def test_global_role_alone_grants_nothing(self):
        pm = actor(UserRole.PROPERTY_MANAGER)
        decision = authorize(pm, Action.VIEW, Target(kind=ResourceType.PROPERTY, property_id=P1))
        assert not decision
        assert "no active management association" in decision.reason

    def test_former_tenant_still_reads_own_lease(self):
        moved_out = actor(UserRole.TENANT)
        lease = Target(
            kind=ResourceType.LEASE, property_id=P1, unit_id=U1, tenant_id=moved_out.user_id
        )
        assert authorize(moved_out, Action.VIEW, lease).reason == "own record"
        assert not authorize(moved_out, Action.PAY, lease)

    def test_assignee_may_change_status_without_association(self):
        vendor_user = actor(UserRole.VENDOR)
        target = Target(
            kind=ResourceType.REQUEST, property_id=P1, assignee_user_id=vendor_user.user_id
        )
        assert authorize(vendor_user, Action.CHANGE_STATUS, target)
        assert not authorize(vendor_user, Action.ASSIGN, target)

    def test_vendor_access_grants_request_view(self):
        vendor_user = actor(UserRole.VENDOR, grant(P1, PropertyRole.VENDOR_ACCESS))
        assert authorize(vendor_user, Action.VIEW, Target(kind=ResourceType.REQUEST, property_id=P1))
        assert not authorize(vendor_user, Action.UPDATE, Target(kind=ResourceType.REQUEST, property_id=P1))

    def test_user_records_are_self_or_admin(self):
        someone = actor(UserRole.TENANT)
        assert authorize(someone, Action.VIEW, Target(kind=ResourceType.USER, owner_id=someone.user_id))
        assert not authorize(someone, Action.VIEW, Target(kind=ResourceType.USER, owner_id=uuid.uuid4()))

    def test_system_operations_are_admin_only(self):
        landlord = actor(UserRole.LANDLORD, grant(P1, PropertyRole.LANDLORD))
        assert not authorize(landlord, Action.MANAGE, Target(kind=ResourceType.SYSTEM))

    def test_only_management_roles_create_properties(self):
        assert authorize(actor(UserRole.LANDLORD), Action.CREATE, Target(kind=ResourceType.PROPERTY))
        assert not authorize(actor(UserRole.TENANT), Action.CREATE, Target(kind=ResourceType.PROPERTY))

    def test_decision_is_pure(self):
        landlord = actor(UserRole.LANDLORD, grant(P1, PropertyRole.LANDLORD))
        target = Target(kind=ResourceType.RENT, property_id=P1)
        assert authorize(landlord, Action.VIEW, target) == authorize(landlord, Action.VIEW, target)


class TestRequestTransitions:
    def test_happy_path(self):
        path = [
            RequestStatus.NEW,
            RequestStatus.ASSIGNED,
            RequestStatus.IN_PROGRESS,
            RequestStatus.COMPLETED,
            RequestStatus.VERIFIED,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target)

    def test_terminal_states(self):
        assert not can_transition(RequestStatus.CANCELED, RequestStatus.NEW)
        assert can_transition(RequestStatus.CANCELED, RequestStatus.ARCHIVED)
        assert not can_transition(RequestStatus.ARCHIVED, RequestStatus.ARCHIVED)

    def test_illegal_jump_is_validation_error(self):
        with pytest.raises(ValidationFailed):
            check_request_transition(
                RequestStatus.NEW,
                RequestStatus.COMPLETED,
                actor=TransitionActor.MANAGER,
                has_assignee=True,
            )

    def test_assigned_requires_assignee(self):
        with pytest.raises(ValidationFailed):
            check_request_transition(
                RequestStatus.NEW,
                RequestStatus.ASSIGNED,
                actor=TransitionActor.MANAGER,
                has_assignee=False,
            )

    def test_public_link_limited_to_progress_and_completion(self):
        check_request_transition(
            RequestStatus.IN_PROGRESS,
            RequestStatus.COMPLETED,
            actor=TransitionActor.PUBLIC,
            has_assignee=True,
        )
        with pytest.raises(Forbidden):
            check_request_transition(
                RequestStatus.IN_PROGRESS,
                RequestStatus.CANCELED,
                actor=TransitionActor.PUBLIC,
                has_assignee=True,
            )

    def test_only_managers_verify(self):
        with pytest.raises(Forbidden):
            check_request_transition(
                RequestStatus.COMPLETED,
                RequestStatus.VERIFIED,
                actor=TransitionActor.ASSIGNEE,
                has_assignee=True,
            )

    def test_requester_may_cancel_new_request(self):
        check_request_transition(
            RequestStatus.NEW,
            RequestStatus.CANCELED,
            actor=TransitionActor.REQUESTER,
            has_assignee=False,
        )
        with pytest.raises(Forbidden):
            check_request_transition(
                RequestStatus.ASSIGNED,
                RequestStatus.CANCELED,
                actor=TransitionActor.REQUESTER,
                has_assignee=True,
            )

    def test_feedback_only_after_completion(self):
        check_feedback_allowed(RequestStatus.COMPLETED)
        with pytest.raises(ValidationFailed):
            check_feedback_allowed(RequestStatus.IN_PROGRESS)


class TestTemplateTransitions:
    def test_pause_and_resume(self):
        check_template_transition(TemplateStatus.ACTIVE, TemplateStatus.PAUSED)
        check_template_transition(TemplateStatus.PAUSED, TemplateStatus.ACTIVE)

    def test_completed_is_final(self):
        with pytest.raises(ValidationFailed):
            check_template_transition(TemplateStatus.COMPLETED, TemplateStatus.ACTIVE)

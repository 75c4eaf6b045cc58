"""
Tests for the authorization policy table.
"""

import uuid

import pytest

from quickcart.database.models import UserRole
from quickcart.services.authorization.policy import (
    Action,
    Actor,
    AuthorizationError,
    Policy,
    Resource,
)


@pytest.fixture
def policy() -> Policy:
    return Policy()


class TestOrderRules:
    def test_customer_views_own_order(self, policy, customer):
        assert policy.is_allowed(customer, Action.VIEW_ORDER, Resource(owner_id=customer.id))

    def test_customer_cannot_view_others(self, policy, customer):
        assert not policy.is_allowed(
            customer, Action.VIEW_ORDER, Resource(owner_id=uuid.uuid4())
        )

    def test_assigned_courier_views_order(self, policy, courier):
        resource = Resource(owner_id=uuid.uuid4(), assignee_id=courier.id)
        assert policy.is_allowed(courier, Action.VIEW_ORDER, resource)

    def test_customer_with_matching_assignee_id_is_not_a_courier(self, policy, customer):
        resource = Resource(owner_id=uuid.uuid4(), assignee_id=customer.id)
        assert not policy.is_allowed(customer, Action.PICK_UP_ORDER, resource)

    def test_staff_update_status(self, policy, admin, customer):
        assert policy.is_allowed(admin, Action.UPDATE_ORDER_STATUS)
        assert not policy.is_allowed(customer, Action.UPDATE_ORDER_STATUS)


class TestShopRules:
    def test_only_staff_manage_shop(self, policy, admin, super_admin, customer, courier):
        assert policy.is_allowed(admin, Action.MANAGE_SHOP)
        assert policy.is_allowed(super_admin, Action.MANAGE_SHOP)
        assert not policy.is_allowed(customer, Action.MANAGE_SHOP)
        assert not policy.is_allowed(courier, Action.MANAGE_SHOP)


class TestPayoutRules:
    def test_super_admin_resolves_platform_payout(self, policy, super_admin, admin):
        resource = Resource(owner_id=None, requester_id=uuid.uuid4())
        assert policy.is_allowed(super_admin, Action.RESOLVE_PAYOUT, resource)
        assert not policy.is_allowed(admin, Action.RESOLVE_PAYOUT, resource)

    def test_requester_never_resolves(self, policy, super_admin):
        resource = Resource(owner_id=None, requester_id=super_admin.id)
        assert not policy.is_allowed(super_admin, Action.RESOLVE_PAYOUT, resource)

    def test_payee_views_payout(self, policy, courier, customer):
        resource = Resource(owner_id=courier.id, requester_id=uuid.uuid4())
        assert policy.is_allowed(courier, Action.VIEW_PAYOUT, resource)
        assert not policy.is_allowed(customer, Action.VIEW_PAYOUT, resource)


class TestAuthorize:
    def test_raises_with_context(self, policy, customer):
        with pytest.raises(AuthorizationError) as exc_info:
            policy.authorize(customer, Action.ASSIGN_COURIER)

        assert exc_info.value.context == {"action": "assign_courier", "role": "customer"}
        assert "assign courier" in str(exc_info.value)

    def test_unknown_action_is_denied(self, customer):
        empty = Policy(rules={})
        assert not empty.is_allowed(customer, Action.PLACE_ORDER, Resource(owner_id=customer.id))

    def test_custom_rules(self):
        actor = Actor(id=uuid.uuid4(), role=UserRole.DELIVERY)
        policy = Policy(rules={Action.RESTOCK_INVENTORY: lambda a, r: True})
        policy.authorize(actor, Action.RESTOCK_INVENTORY)

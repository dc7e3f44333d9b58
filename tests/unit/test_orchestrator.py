"""Unit tests for payment orchestration.

Gateways are in-memory fakes (tests/fakes.py); the registry comes from the
gateway_registry fixture.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest
from libs.auth.models import OwnerIdentity
from libs.common.config import get_settings
from libs.common.errors import (
    GatewayError,
    IllegalTransitionError,
    NotFoundError,
    PaymentAlreadyExistsError,
    SignatureError,
    TransactionTimeoutError,
)
from services.payments_service.models import Payment, PaymentMethod, PaymentStatus
from services.payments_service.services import orchestrator
from services.store_service.models import OrderStatus
from services.store_service.services import order_engine
from sqlalchemy import func, select, update
from tests.factories import (
    CartFactory,
    CheckoutFactory,
    OrderFactory,
    PaymentFactory,
    ProductFactory,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_order(db, method=PaymentMethod.CARD, **overrides):
    order = OrderFactory.create(payment_method=method, **overrides)
    db.add(order)
    await db.commit()
    return order


async def _make_paid_flow(db, registry, method=PaymentMethod.CARD):
    """Order with a pending gateway payment, as left by checkout."""
    order = await _make_order(db, method=method, total=Decimal("45.00"))
    payment = await orchestrator.initiate_payment(
        db, order, method, orchestrator.customer_from_order(order), registry
    )
    return order, payment


async def _payment_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(Payment))


# ---------------------------------------------------------------------------
# initiate_payment
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cash_payment_skips_gateway(db_session, gateway_registry, card_gateway):
    order = await _make_order(db_session, method=PaymentMethod.CASH_ON_DELIVERY)

    payment = await orchestrator.initiate_payment(
        db_session,
        order,
        PaymentMethod.CASH_ON_DELIVERY,
        orchestrator.customer_from_order(order),
        gateway_registry,
    )

    assert payment.status == PaymentStatus.PENDING
    assert payment.gateway is None
    assert payment.payment_url is None
    assert payment.amount == order.total
    assert card_gateway.initiated == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_card_payment_goes_through_gateway(db_session, gateway_registry, card_gateway):
    order = await _make_order(db_session, total=Decimal("45.00"))

    payment = await orchestrator.initiate_payment(
        db_session,
        order,
        PaymentMethod.CARD,
        orchestrator.customer_from_order(order),
        gateway_registry,
    )

    assert payment.gateway == "fakecard"
    assert payment.payment_url == f"https://pay.test/fakecard/{order.order_number}"
    assert payment.external_ref == f"FAKECARD-{order.order_number}"
    assert payment.callback_url == "http://api.test/payments/callbacks/fakecard"

    (call,) = card_gateway.initiated
    assert call["amount"] == Decimal("45.00")
    assert call["order_ref"] == order.order_number
    assert call["return_url"] == f"http://shop.test/checkout/success?orderId={order.id}"
    assert call["customer"].email == order.email


@pytest.mark.asyncio
@pytest.mark.unit
async def test_wallet_payment_uses_wallet_gateway(
    db_session, gateway_registry, wallet_gateway
):
    order, payment = await _make_paid_flow(
        db_session, gateway_registry, method=PaymentMethod.MOBILE_WALLET
    )

    assert payment.gateway == "fakewallet"
    assert len(wallet_gateway.initiated) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_gateway_failure_writes_no_payment_and_keeps_stock(
    db_session, gateway_registry, card_gateway
):
    """The order and its stock hold survive a failed initiation."""
    product = ProductFactory.create(stock=5)
    cart = CartFactory.create(lines=[(product.id, 2)])
    db_session.add_all([product, cart])
    await db_session.commit()
    identity = OwnerIdentity.for_guest(cart.session_id)
    order = await order_engine.create_order(
        db_session, identity, CheckoutFactory.create(payment_method="card")
    )
    card_gateway.fail = True

    with pytest.raises(GatewayError) as exc_info:
        await orchestrator.initiate_payment(
            db_session,
            order,
            PaymentMethod.CARD,
            orchestrator.customer_from_order(order),
            gateway_registry,
        )

    assert exc_info.value.context["order_number"] == order.order_number
    assert await _payment_count(db_session) == 0
    await db_session.refresh(product)
    assert product.stock == 3
    kept = await order_engine.get_order(db_session, order.id, identity)
    assert kept.status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_initiation_conflicts(db_session, gateway_registry):
    order, _ = await _make_paid_flow(db_session, gateway_registry)

    with pytest.raises(PaymentAlreadyExistsError):
        await orchestrator.initiate_payment(
            db_session,
            order,
            PaymentMethod.CARD,
            orchestrator.customer_from_order(order),
            gateway_registry,
        )


# ---------------------------------------------------------------------------
# handle_callback
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_success_callback_confirms_order(db_session, gateway_registry, card_gateway):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, signature = card_gateway.callback(
        order.order_number, "paid", amount="45.00", ref="TX-1"
    )

    result = await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    assert result.outcome == orchestrator.OUTCOME_APPLIED
    assert result.payment_status == PaymentStatus.SUCCESS
    payment = await orchestrator.get_payment_for_order(db_session, order.id)
    assert payment.status == PaymentStatus.SUCCESS
    assert payment.paid_at is not None
    assert payment.external_ref == "TX-1"
    assert payment.gateway_response["status"] == "paid"
    await db_session.refresh(order)
    assert order.status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_replayed_callback_is_noop(db_session, gateway_registry, card_gateway):
    """Delivering the same callback again changes nothing."""
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, signature = card_gateway.callback(order.order_number, "paid", amount="45.00")

    await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )
    first = await orchestrator.get_payment_for_order(db_session, order.id)
    paid_at = first.paid_at

    result = await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    assert result.outcome == orchestrator.OUTCOME_DUPLICATE
    again = await orchestrator.get_payment_for_order(db_session, order.id)
    assert again.status == PaymentStatus.SUCCESS
    assert again.paid_at == paid_at


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_callback_leaves_order_pending(
    db_session, gateway_registry, card_gateway
):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, signature = card_gateway.callback(order.order_number, "declined")

    result = await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    assert result.payment_status == PaymentStatus.FAILED
    payment = await orchestrator.get_payment_for_order(db_session, order.id)
    assert payment.status == PaymentStatus.FAILED
    assert payment.paid_at is None
    await db_session.refresh(order)
    assert order.status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_contradicting_terminal_callback_is_rejected(
    db_session, gateway_registry, card_gateway
):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    order_id = order.id
    raw, signature = card_gateway.callback(order.order_number, "paid")
    await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    raw, signature = card_gateway.callback(order.order_number, "failed")
    with pytest.raises(IllegalTransitionError):
        await orchestrator.handle_callback(
            db_session, gateway_registry, "fakecard", raw, signature
        )

    payment = await orchestrator.get_payment_for_order(db_session, order_id)
    assert payment.status == PaymentStatus.SUCCESS


@pytest.mark.asyncio
@pytest.mark.unit
async def test_bad_signature_mutates_nothing(db_session, gateway_registry, card_gateway):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, _ = card_gateway.callback(order.order_number, "paid")

    with pytest.raises(SignatureError):
        await orchestrator.handle_callback(
            db_session, gateway_registry, "fakecard", raw, "0" * 64
        )

    payment = await orchestrator.get_payment_for_order(db_session, order.id)
    assert payment.status == PaymentStatus.PENDING
    await db_session.refresh(order)
    assert order.status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_callback_signed_for_another_gateway_is_rejected(
    db_session, gateway_registry, card_gateway, wallet_gateway
):
    wallet_gateway.secret = "wallet-secret"
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, signature = card_gateway.callback(order.order_number, "paid")

    with pytest.raises(SignatureError):
        await orchestrator.handle_callback(
            db_session, gateway_registry, "fakewallet", raw, signature
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_gateway_is_not_found(db_session, gateway_registry):
    with pytest.raises(NotFoundError):
        await orchestrator.handle_callback(
            db_session, gateway_registry, "nope", b"{}", None
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_callback_for_unknown_order_is_ignored(
    db_session, gateway_registry, card_gateway
):
    raw, signature = card_gateway.callback("ORD-19990101-NOPE00", "paid")

    result = await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    assert result.outcome == orchestrator.OUTCOME_IGNORED
    assert await _payment_count(db_session) == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_amount_mismatch_is_not_applied(db_session, gateway_registry, card_gateway):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    raw, signature = card_gateway.callback(order.order_number, "paid", amount="1.00")

    result = await orchestrator.handle_callback(
        db_session, gateway_registry, "fakecard", raw, signature
    )

    assert result.outcome == orchestrator.OUTCOME_IGNORED
    payment = await orchestrator.get_payment_for_order(db_session, order.id)
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_slow_callback_times_out_and_rolls_back(
    db_session, gateway_registry, card_gateway, monkeypatch
):
    order, _ = await _make_paid_flow(db_session, gateway_registry)
    order_id = order.id
    raw, signature = card_gateway.callback(order.order_number, "paid", amount="45.00")

    async def stalled_settle(*args, **kwargs):
        await asyncio.sleep(5)
        return orchestrator.OUTCOME_APPLIED

    monkeypatch.setattr(get_settings(), "ORDER_TX_TIMEOUT_SECONDS", 0.05)
    monkeypatch.setattr(orchestrator, "_settle", stalled_settle)

    with pytest.raises(TransactionTimeoutError):
        await orchestrator.handle_callback(
            db_session, gateway_registry, "fakecard", raw, signature
        )

    payment = await orchestrator.get_payment_for_order(db_session, order_id)
    assert payment.status == PaymentStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_concurrent_duplicate_is_reported_as_duplicate(
    db_session, gateway_registry, card_gateway
):
    """A callback that loses the conditional update to an identical one."""
    order, payment = await _make_paid_flow(db_session, gateway_registry)
    # The winner writes behind our back; our in-memory copy still says PENDING.
    await db_session.execute(
        update(Payment)
        .where(Payment.id == payment.id)
        .values(status=PaymentStatus.SUCCESS)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()
    assert payment.status == PaymentStatus.PENDING

    outcome = await orchestrator._settle(
        db_session, payment, order, PaymentStatus.SUCCESS
    )

    assert outcome == orchestrator.OUTCOME_DUPLICATE


# ---------------------------------------------------------------------------
# confirm_payment_manually
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_confirmation_creates_payment(db_session):
    order = await _make_order(db_session, method=PaymentMethod.CASH_ON_DELIVERY)

    payment = await orchestrator.confirm_payment_manually(
        db_session, order.id, external_ref="CASH-42"
    )

    assert payment.status == PaymentStatus.SUCCESS
    assert payment.external_ref == "CASH-42"
    assert payment.paid_at is not None
    await db_session.refresh(order)
    assert order.status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_confirmation_settles_pending_payment_and_is_idempotent(
    db_session, gateway_registry
):
    order, _ = await _make_paid_flow(db_session, gateway_registry)

    first = await orchestrator.confirm_payment_manually(db_session, order.id)
    second = await orchestrator.confirm_payment_manually(db_session, order.id)

    assert first.id == second.id
    assert second.status == PaymentStatus.SUCCESS
    assert await _payment_count(db_session) == 1
    await db_session.refresh(order)
    assert order.status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_confirmation_of_failed_payment_is_rejected(db_session):
    order = await _make_order(db_session)
    db_session.add(PaymentFactory.create(order, status=PaymentStatus.FAILED))
    await db_session.commit()

    with pytest.raises(IllegalTransitionError):
        await orchestrator.confirm_payment_manually(db_session, order.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_manual_confirmation_of_unknown_order(db_session):
    with pytest.raises(NotFoundError):
        await orchestrator.confirm_payment_manually(db_session, uuid.uuid4())


# ---------------------------------------------------------------------------
# get_payment_status
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_status_defaults_to_pending(db_session):
    order = await _make_order(db_session, member_auth_id="user-poll")

    view = await orchestrator.get_payment_status(
        db_session, order.id, OwnerIdentity.for_user("user-poll")
    )

    assert view.payment is None
    assert view.payment_status == PaymentStatus.PENDING
    assert view.order.status == OrderStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_status_is_owner_only(db_session):
    order = await _make_order(db_session, member_auth_id="user-poll")

    with pytest.raises(NotFoundError):
        await orchestrator.get_payment_status(
            db_session, order.id, OwnerIdentity.for_user("user-other")
        )

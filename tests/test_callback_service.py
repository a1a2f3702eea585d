import pytest

from application.services.callback_service import (
    ALIPAY_FAILURE,
    ALIPAY_SUCCESS,
    WECHAT_ACK,
    WECHAT_SIGNATURE_ERROR,
    WECHAT_SYSTEM_ERROR,
    CallbackService,
)
from domain.order.entity import OrderStatus, PaymentType
from domain.refund.entity import RefundStatus
from infrastructure.external.payments.alipay_crypto import AlipayVerifier
from infrastructure.external.payments.wechat_crypto import (
    AesGcmCipher,
    PlatformCertificateStore,
    WechatPayVerifier,
)
from tests.support import (
    API_V3_KEY,
    PLATFORM_SERIAL,
    count_logs,
    load_order,
    wechat_refund,
    wechat_transaction,
)


ORDER_NO = "ORDER_20261016101500000001"


@pytest.fixture
def callbacks(core, uow_factory, platform_key, alipay_key):
    store = PlatformCertificateStore()
    store.add_key(PLATFORM_SERIAL, platform_key.public_key())
    return CallbackService(
        core,
        uow_factory,
        wechat_verifier=WechatPayVerifier(store),
        wechat_cipher=AesGcmCipher(API_V3_KEY),
        alipay_verifier=AlipayVerifier(alipay_key.public_key()),
        alipay_app_id="2021000000000001",
    )


@pytest.mark.asyncio
async def test_wechat_notify_marks_order_paid(callbacks, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))

    reply = await callbacks.handle_wechat_payment(headers, body)

    assert reply == WECHAT_ACK
    assert reply.body == {"code": "SUCCESS", "message": "成功"}
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.SUCCESS
    assert await count_logs(uow_factory, ORDER_NO) == 1


@pytest.mark.asyncio
async def test_wechat_duplicate_notify_is_acked_once_logged(callbacks, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))

    assert await callbacks.handle_wechat_payment(headers, body) == WECHAT_ACK
    assert await callbacks.handle_wechat_payment(headers, body) == WECHAT_ACK

    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.SUCCESS
    assert await count_logs(uow_factory, ORDER_NO) == 1


@pytest.mark.asyncio
async def test_wechat_tampered_signature(callbacks, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))
    headers["Wechatpay-Signature"] = headers["Wechatpay-Signature"][:-8] + "AAAAAAA="

    reply = await callbacks.handle_wechat_payment(headers, body)

    assert reply == WECHAT_SIGNATURE_ERROR
    assert reply.status_code == 500
    assert reply.body == {"code": "ERROR", "message": "通知验签失败"}
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY
    assert await count_logs(uow_factory, ORDER_NO) == 0


@pytest.mark.asyncio
async def test_wechat_tampered_body(callbacks, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))
    reply = await callbacks.handle_wechat_payment(headers, body.replace("支付成功", "支付失败"))
    assert reply == WECHAT_SIGNATURE_ERROR
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_wechat_expired_timestamp(callbacks, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO), timestamp=1_600_000_000)
    assert await callbacks.handle_wechat_payment(headers, body) == WECHAT_SIGNATURE_ERROR


@pytest.mark.asyncio
async def test_wechat_decrypt_failure(core, uow_factory, make_order, wechat_notification, platform_key):
    await make_order(ORDER_NO)
    store = PlatformCertificateStore()
    store.add_key(PLATFORM_SERIAL, platform_key.public_key())
    wrong_key = CallbackService(
        core,
        uow_factory,
        wechat_verifier=WechatPayVerifier(store),
        wechat_cipher=AesGcmCipher("fedcba9876543210fedcba9876543210"),
    )
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))

    assert await wrong_key.handle_wechat_payment(headers, body) == WECHAT_SYSTEM_ERROR
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_wechat_malformed_body(callbacks):
    assert await callbacks.handle_wechat_payment({}, "{not json") == WECHAT_SYSTEM_ERROR


@pytest.mark.asyncio
async def test_wechat_undecodable_body(callbacks):
    assert await callbacks.handle_wechat_payment({}, b"\xff\xfe{bad") == WECHAT_SYSTEM_ERROR
    assert await callbacks.handle_wechat_refund({}, b"\xff\xfe{bad") == WECHAT_SYSTEM_ERROR


@pytest.mark.asyncio
async def test_wechat_notify_accepts_raw_bytes(callbacks, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))
    assert await callbacks.handle_wechat_payment(headers, body.encode("utf-8")) == WECHAT_ACK
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.SUCCESS


@pytest.mark.asyncio
async def test_wechat_busy_lock_still_acks(callbacks, lock, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))
    with lock.try_acquire(ORDER_NO):
        assert await callbacks.handle_wechat_payment(headers, body) == WECHAT_ACK
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_wechat_refund_notify(callbacks, core, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO, status=OrderStatus.SUCCESS)
    refund = await core.begin_refund(ORDER_NO)
    headers, body = wechat_notification(
        wechat_refund(refund.refund_no, ORDER_NO, "SUCCESS"), event_type="REFUND.SUCCESS"
    )

    assert await callbacks.handle_wechat_refund(headers, body) == WECHAT_ACK

    async with uow_factory(readonly=True) as uow:
        stored = await uow.refund_repository.get_by_refund_no(refund.refund_no)
    assert stored.refund_status == RefundStatus.SUCCESS
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.REFUND_SUCCESS


@pytest.mark.asyncio
async def test_unconfigured_wechat_callbacks_fail(core, uow_factory, make_order, wechat_notification):
    await make_order(ORDER_NO)
    headers, body = wechat_notification(wechat_transaction(ORDER_NO))
    bare = CallbackService(core, uow_factory)
    assert await bare.handle_wechat_payment(headers, body) == WECHAT_SYSTEM_ERROR
    assert await bare.handle_alipay_payment({"out_trade_no": ORDER_NO}) == ALIPAY_FAILURE


@pytest.mark.asyncio
async def test_alipay_notify_marks_order_paid(callbacks, uow_factory, make_order, alipay_notification):
    await make_order(ORDER_NO, payment_type=PaymentType.ALIPAY)
    params = alipay_notification(ORDER_NO)

    assert await callbacks.handle_alipay_payment(params) == ALIPAY_SUCCESS
    assert await callbacks.handle_alipay_payment(params) == ALIPAY_SUCCESS

    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.SUCCESS
    assert await count_logs(uow_factory, ORDER_NO) == 1


@pytest.mark.asyncio
async def test_alipay_bad_signature(callbacks, uow_factory, make_order, alipay_notification):
    await make_order(ORDER_NO, payment_type=PaymentType.ALIPAY)
    params = alipay_notification(ORDER_NO)
    params["total_amount"] = "100.00"

    assert await callbacks.handle_alipay_payment(params) == ALIPAY_FAILURE
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.parametrize(
    "overrides",
    [
        {"total_amount": "0.02"},
        {"app_id": "2021999999999999"},
    ],
)
@pytest.mark.asyncio
async def test_alipay_rejects_mismatched_fields(callbacks, uow_factory, make_order, alipay_notification, overrides):
    await make_order(ORDER_NO, payment_type=PaymentType.ALIPAY)
    params = alipay_notification(ORDER_NO, **overrides)

    assert await callbacks.handle_alipay_payment(params) == ALIPAY_FAILURE
    assert (await load_order(uow_factory, ORDER_NO)).order_status == OrderStatus.NOTPAY


@pytest.mark.asyncio
async def test_alipay_unknown_order(callbacks, products, alipay_notification):
    assert await callbacks.handle_alipay_payment(alipay_notification("ORDER_UNKNOWN")) == ALIPAY_FAILURE

import json

import httpx
import pytest

from services.enrollment import NotificationAction
from services.notifications import Notification, Notifier

API_URL = "https://emailjs.test/api/v1.0/email/send"


def _notification(email="alice@example.com"):
    return Notification(
        to_name="Alice",
        to_email=email,
        class_date="03.06.2024",
        class_time="09:00",
        action_type=NotificationAction.BOOKING,
        message="Вы успешно записались на занятие 03.06.2024 в 09:00.",
    )


def _notifier(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Notifier(service_id="svc", template_id="tpl", public_key="pub", api_url=API_URL, client=client)


def test_template_params():
    params = _notification().template_params()

    assert params['action'] == 'booking'
    assert 'action_type' not in params
    assert params['class_time'] == '09:00'


@pytest.mark.asyncio
async def test_unconfigured_notifier_simulates_delivery():
    notifier = Notifier(service_id="", template_id="", public_key="")

    assert await notifier.send(_notification()) is True


@pytest.mark.asyncio
async def test_send_posts_emailjs_payload():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, text="OK")

    assert await _notifier(handler).send(_notification()) is True

    assert len(requests) == 1
    body = json.loads(requests[0].content)
    assert str(requests[0].url) == API_URL
    assert body['service_id'] == 'svc'
    assert body['template_id'] == 'tpl'
    assert body['user_id'] == 'pub'
    assert body['template_params']['to_email'] == 'alice@example.com'
    assert body['template_params']['action'] == 'booking'


@pytest.mark.asyncio
async def test_send_without_email_is_skipped():
    def handler(request):
        raise AssertionError("request must not be sent")

    assert await _notifier(handler).send(_notification(email="")) is False


@pytest.mark.asyncio
async def test_send_failure_is_reported_not_raised():
    def rejected(request):
        return httpx.Response(400, text="The public key is invalid")

    def unreachable(request):
        raise httpx.ConnectError("offline", request=request)

    assert await _notifier(rejected).send(_notification()) is False
    assert await _notifier(unreachable).send(_notification()) is False

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import httpx

from config import EMAILJS_SERVICE_ID, EMAILJS_TEMPLATE_ID, EMAILJS_PUBLIC_KEY, EMAILJS_API_URL
from .enrollment import NotificationAction

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """Параметры письма о записи или отмене"""
    to_name: str
    to_email: str
    class_date: str
    class_time: str
    action_type: NotificationAction
    message: str

    def template_params(self) -> dict:
        params = asdict(self)
        params['action'] = NotificationAction(self.action_type).value
        del params['action_type']
        return params


class Notifier:
    """Отправка уведомлений через EmailJS; без настроек письмо только логируется"""

    def __init__(self, service_id: str = EMAILJS_SERVICE_ID, template_id: str = EMAILJS_TEMPLATE_ID,
                 public_key: str = EMAILJS_PUBLIC_KEY, api_url: str = EMAILJS_API_URL,
                 client: Optional[httpx.AsyncClient] = None):
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.api_url = api_url
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.service_id and self.template_id and self.public_key)

    async def send(self, notification: Notification) -> bool:
        """Отправка письма. Ошибки логируются и не пробрасываются"""
        if not self.is_configured:
            logger.warning(
                f"EmailJS не настроен, имитируем отправку: {notification.action_type.value} "
                f"для {notification.to_name} <{notification.to_email}> "
                f"({notification.class_date} {notification.class_time})"
            )
            return True

        if not notification.to_email:
            logger.warning(f"У клиента {notification.to_name} нет e-mail, уведомление не отправлено")
            return False

        payload = {
            'service_id': self.service_id,
            'template_id': self.template_id,
            'user_id': self.public_key,
            'template_params': notification.template_params(),
        }

        try:
            if self._client is not None:
                response = await self._client.post(self.api_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=10.0) as client:
                    response = await client.post(self.api_url, json=payload)

            if response.status_code != 200:
                logger.error(f"Ошибка EmailJS [{response.status_code}]: {response.text}")
                return False

            logger.info(f"Уведомление {notification.action_type.value} отправлено на {notification.to_email}")
            return True

        except httpx.HTTPError as e:
            logger.error(f"Ошибка отправки уведомления: {e}")
            return False

from common.schemas import CamelModel
from common.timeutils import isoformat
from models.notification import Notification


class MarkReadRequest(CamelModel):
    is_read: bool = True


def notification_to_dict(notification: Notification) -> dict:
    return {
        "id": str(notification.id),
        "type": notification.type.value,
        "title": notification.title,
        "body": notification.body,
        "data": notification.data or {},
        "imageUrl": notification.image_url,
        "actionUrl": notification.action_url,
        "isRead": notification.is_read,
        "createdAt": isoformat(notification.created_at),
    }

from providers.image_store import create_image_store
from services.comment_service import CommentService
from services.follow_service import FollowService
from services.like_service import LikeService
from services.maintenance_service import MaintenanceService
from services.notification_service import NotificationService
from services.photo_service import PhotoService
from services.user_service import UserService

user_service = UserService()
notification_service = NotificationService()
like_service = LikeService(user_service, notification_service)
comment_service = CommentService(user_service, notification_service)
follow_service = FollowService(user_service, notification_service)
photo_service = PhotoService(user_service, create_image_store())
maintenance_service = MaintenanceService(notification_service)


def get_user_service() -> UserService:
    return user_service


def get_notification_service() -> NotificationService:
    return notification_service


def get_like_service() -> LikeService:
    return like_service


def get_comment_service() -> CommentService:
    return comment_service


def get_follow_service() -> FollowService:
    return follow_service


def get_photo_service() -> PhotoService:
    return photo_service


def get_maintenance_service() -> MaintenanceService:
    return maintenance_service

from rest_framework.throttling import UserRateThrottle


class MessageSendThrottle(UserRateThrottle):
    scope = "message_send"


class ImageUploadThrottle(UserRateThrottle):
    scope = "message_image"

# messaging/urls.py
from django.urls import path

from .views import (
    ConversationListView,
    ConversationMessagesView,
    ConversationPurgeView,
    HideMessageView,
    ImageMessageView,
    MarkReadView,
    ScheduleSessionView,
    SupportContactView,
    UnreadCountView,
)

app_name = "messaging"

urlpatterns = [
    path("conversations/", ConversationListView.as_view(), name="conversation-list"),
    path(
        "conversations/<uuid:pk>/",
        ConversationPurgeView.as_view(),
        name="conversation-purge",
    ),
    path("unread-count/", UnreadCountView.as_view(), name="unread-count"),
    path("mark-read/<uuid:pk>/", MarkReadView.as_view(), name="mark-read"),
    path("support/", SupportContactView.as_view(), name="support"),
    path("<uuid:pk>/", ConversationMessagesView.as_view(), name="conversation-messages"),
    path("<uuid:pk>/image/", ImageMessageView.as_view(), name="image-message"),
    path("<uuid:pk>/schedule/", ScheduleSessionView.as_view(), name="schedule-session"),
    path("<uuid:pk>/hide/", HideMessageView.as_view(), name="hide-message"),
]

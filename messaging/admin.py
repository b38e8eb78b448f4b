from django.contrib import admin
from django.utils.html import format_html

from .models import Message


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "formatted_content",
        "sender_id",
        "conversation_display",
        "type",
        "hidden",
        "read",
        "created_at",
    )
    list_filter = ("type", "hidden", "read", "created_at")
    search_fields = ("content", "=sender_id", "=receiver_id")
    raw_id_fields = ("course", "reply_to")
    readonly_fields = ("created_at",)
    list_per_page = 50
    actions = ["hide_messages", "unhide_messages"]

    def formatted_content(self, obj):
        content = obj.preview(50)
        return format_html('<span title="{}">{}</span>', obj.content, content)

    formatted_content.short_description = "Content"

    def conversation_display(self, obj):
        if obj.course_id is None:
            return f"Direct to {obj.receiver_id}"
        if obj.group_id:
            return f"Group {obj.group_id}"
        return f"Course {obj.course_id}"

    conversation_display.short_description = "Conversation"

    @admin.action(description="Hide selected messages")
    def hide_messages(self, request, queryset):
        updated = queryset.update(hidden=True)
        self.message_user(request, f"{updated} messages hidden.")

    @admin.action(description="Unhide selected messages")
    def unhide_messages(self, request, queryset):
        updated = queryset.update(hidden=False)
        self.message_user(request, f"{updated} messages unhidden.")

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ["username", "nickname", "email", "role", "created_at"]
    list_filter = ["role", "created_at"]
    search_fields = ["username", "nickname", "email"]
    ordering = ["-created_at"]
    fieldsets = DjangoUserAdmin.fieldsets + (
        ("Profile", {"fields": ("nickname", "avatar", "role")}),
    )

from django.contrib import admin

from .models import Course, CourseGroup, Enrollment, Session


class CourseGroupInline(admin.TabularInline):
    model = CourseGroup
    extra = 0
    raw_id_fields = ("specialist",)


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ("title", "specialist", "created_at")
    search_fields = ("title", "specialist__nickname")
    raw_id_fields = ("specialist",)
    inlines = [CourseGroupInline]


@admin.register(CourseGroup)
class CourseGroupAdmin(admin.ModelAdmin):
    list_display = ("name", "course", "specialist", "capacity")
    list_filter = ("course",)
    raw_id_fields = ("course", "specialist")


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ("user", "course", "group", "status", "enrolled_at")
    list_filter = ("status", "course")
    raw_id_fields = ("user", "course", "group")


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ("title", "course", "group", "scheduled_at", "status")
    list_filter = ("status",)
    raw_id_fields = ("course", "group")

# users/factories.py
import factory
from django.contrib.auth import get_user_model

from .models import Role

User = get_user_model()


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda obj: f"{obj.username}@example.com")
    nickname = factory.LazyAttribute(lambda obj: obj.username.title())
    role = Role.USER

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        self.set_password(extracted or "password123")
        if create:
            self.save(update_fields=["password"])


class OwnerFactory(UserFactory):
    role = Role.OWNER
    nickname = "Operator"


class SpecialistFactory(UserFactory):
    role = Role.SPECIALIST

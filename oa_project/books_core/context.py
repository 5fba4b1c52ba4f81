from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class BookContext:
    """Which tenant's books a call operates on, and who is acting.

    ``using`` is the Django database alias holding the tenant's partition.
    The request layer (middleware, tasks, commands) builds one of these and
    threads it through every service call.
    """

    company: Any
    user: Optional[Any] = None
    using: str = "default"

    def scoped(self, model):
        """Tenant-filtered queryset for ``model`` on the tenant's database."""
        return model.objects.db_manager(self.using).for_company(self.company)

    @property
    def actor(self):
        # anonymous users are not stored as creators
        if self.user is not None and getattr(self.user, "is_authenticated", False):
            return self.user
        return None

"""Concrete counter sources used by the dashboard badges.

Each source pairs a count query with the change-feed registration that
invalidates it. Channel names carry the scope and user so feed logs
show who a registration belongs to; they are labels only. Every counter
owns its own handle, so two dashboards open for the same user and school
never release each other.

PendingSubmissions is a multi-step count: sections the teacher is
assigned to, then assignments in those sections, then ungraded
submissions for those assignments.
"""

from eduverse.backend.client import BackendClient
from eduverse.backend.query import QueryResult
from eduverse.counters.live import CounterSource
from eduverse.realtime.subscription import SubscriptionDescriptor


class UnreadAdminMessages(CounterSource):
    """Unread admin messages addressed to the current user in a school."""

    name = "unread_messages"
    table = "admin_message_recipients"

    async def count(self, client: BackendClient, scope_id: str, user_id: str) -> QueryResult:
        return await (
            client.table(self.table)
            .select("id, admin_messages!inner(school_id)", count="exact", head=True)
            .eq("recipient_user_id", user_id)
            .eq("is_read", False)
            .eq("admin_messages.school_id", scope_id)
            .execute()
        )

    def subscription(self, scope_id: str, user_id: str) -> SubscriptionDescriptor:
        return SubscriptionDescriptor(
            channel_name=f"unread-messages-rt-{scope_id}-{user_id}",
            table_name=self.table,
            row_filter=f"recipient_user_id=eq.{user_id}",
        )


class UnreadNotifications(CounterSource):
    """In-app notifications for the current user that have no read_at yet."""

    name = "unread_notifications"
    table = "app_notifications"

    async def count(self, client: BackendClient, scope_id: str, user_id: str) -> QueryResult:
        return await (
            client.table(self.table)
            .select("id", count="exact", head=True)
            .eq("school_id", scope_id)
            .eq("user_id", user_id)
            .is_("read_at", None)
            .execute()
        )

    def subscription(self, scope_id: str, user_id: str) -> SubscriptionDescriptor:
        return SubscriptionDescriptor(
            channel_name=f"rt:app_notifications:{scope_id}:{user_id}",
            table_name=self.table,
            row_filter=f"user_id=eq.{user_id}",
        )


class UnreadParentMessages(CounterSource):
    """Unread parent → teacher messages for the current user."""

    name = "unread_parent_messages"
    table = "parent_messages"

    async def count(self, client: BackendClient, scope_id: str, user_id: str) -> QueryResult:
        return await (
            client.table(self.table)
            .select("id", count="exact", head=True)
            .eq("school_id", scope_id)
            .eq("recipient_user_id", user_id)
            .eq("is_read", False)
            .execute()
        )

    def subscription(self, scope_id: str, user_id: str) -> SubscriptionDescriptor:
        # Filtered by school; the count query narrows to the recipient
        return SubscriptionDescriptor(
            channel_name=f"teacher-badges-messages-{scope_id}-{user_id}",
            table_name=self.table,
            row_filter=f"school_id=eq.{scope_id}",
        )


class PendingSubmissions(CounterSource):
    """Ungraded submissions for assignments in the teacher's sections."""

    name = "pending_submissions"
    table = "assignment_submissions"

    async def count(self, client: BackendClient, scope_id: str, user_id: str) -> QueryResult:
        sections = await (
            client.table("teacher_assignments")
            .select("class_section_id")
            .eq("school_id", scope_id)
            .eq("teacher_user_id", user_id)
            .execute()
        )
        if sections.error is not None:
            return sections
        section_ids = [row["class_section_id"] for row in sections.data or [] if row.get("class_section_id")]
        if not section_ids:
            return QueryResult(count=0)

        assignments = await (
            client.table("assignments")
            .select("id")
            .eq("school_id", scope_id)
            .in_("class_section_id", section_ids)
            .execute()
        )
        if assignments.error is not None:
            return assignments
        assignment_ids = [row["id"] for row in assignments.data or []]
        if not assignment_ids:
            return QueryResult(count=0)

        # graded_at is null until the teacher grades the submission
        return await (
            client.table(self.table)
            .select("id", count="exact", head=True)
            .in_("assignment_id", assignment_ids)
            .is_("graded_at", None)
            .execute()
        )

    def subscription(self, scope_id: str, user_id: str) -> SubscriptionDescriptor:
        return SubscriptionDescriptor(
            channel_name=f"teacher-badges-submissions-{scope_id}-{user_id}",
            table_name=self.table,
        )


COUNTER_SOURCES: dict[str, CounterSource] = {
    source.name: source
    for source in (
        UnreadAdminMessages(),
        UnreadNotifications(),
        UnreadParentMessages(),
        PendingSubmissions(),
    )
}


def get_counter_source(name: str) -> CounterSource:
    try:
        return COUNTER_SOURCES[name]
    except KeyError:
        raise KeyError(f"Unknown counter: {name}") from None

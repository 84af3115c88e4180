from member_sync.contexts.membership.application.service import MembershipProjectionService

__all__ = ["MembershipProjectionService"]

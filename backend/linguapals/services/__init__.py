"""Services module - group chat business logic."""

from .group_service import GroupService, init_group_service, get_group_service
from .join_flow import JoinFlowController
from .partner_reply import PartnerReplyService

__all__ = [
    'GroupService', 'init_group_service', 'get_group_service',
    'JoinFlowController', 'PartnerReplyService',
]

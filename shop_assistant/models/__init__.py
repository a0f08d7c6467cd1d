from shop_assistant.models.account import (
    PasswordResetToken,
    SubAccount,
    User,
    UserMallBinding,
    UserOperationLog,
)
from shop_assistant.models.admin import Admin
from shop_assistant.models.assistant import (
    ArrivalDataDetail,
    CostSettlement,
    MallState,
    PendingSettlementDetail,
    PromotionSalesDetail,
)
from shop_assistant.models.membership import (
    Invitation,
    InvitationReward,
    MembershipPackage,
    PluginVersion,
    UserPackage,
)

__all__ = [
    "Admin",
    "ArrivalDataDetail",
    "CostSettlement",
    "Invitation",
    "InvitationReward",
    "MallState",
    "MembershipPackage",
    "PasswordResetToken",
    "PendingSettlementDetail",
    "PluginVersion",
    "PromotionSalesDetail",
    "SubAccount",
    "User",
    "UserMallBinding",
    "UserOperationLog",
    "UserPackage",
]

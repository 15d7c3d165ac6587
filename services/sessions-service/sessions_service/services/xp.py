from dataclasses import dataclass
from typing import Optional

import structlog

from ..config import Settings
from ..models import UserProfile
from ..repositories import RelationalStore
from .context import LevelInfo, SessionContext

logger = structlog.get_logger(__name__)


@dataclass
class XpAward:
    xp_awarded: int
    total_xp: int
    leveled_up: bool = False
    new_level_number: Optional[int] = None
    remaining_xp_for_next_level: Optional[int] = None


def level_for(total_xp: int, levels: list[LevelInfo]) -> Optional[LevelInfo]:
    reached = [level for level in levels if level.xp_required <= total_xp]
    if not reached:
        return None
    return max(reached, key=lambda level: level.level_number)


def next_level_after(level_number: int, levels: list[LevelInfo]) -> Optional[LevelInfo]:
    higher = [level for level in levels if level.level_number > level_number]
    return min(higher, key=lambda level: level.level_number) if higher else None


class XpEngine:
    def __init__(self, store: RelationalStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def award(self, context: SessionContext) -> XpAward:
        profile = context.profile
        xp_awarded = self.settings.XP_PER_WORKOUT
        total_xp = (profile.experience_points or 0) + xp_awarded

        level = level_for(total_xp, context.level_definitions)
        new_level_number = level.level_number if level else 1
        upcoming = next_level_after(new_level_number, context.level_definitions)
        remaining = max(0, upcoming.xp_required - total_xp) if upcoming else None
        old_level_number = profile.current_level_number or 1
        leveled_up = new_level_number > old_level_number

        try:
            updated = await self.store.update(
                UserProfile,
                profile.user_id,
                {"experience_points": total_xp, "current_level_number": new_level_number},
            )
            if updated is None:
                raise LookupError(f"profile {profile.user_id} disappeared before the XP update")
        except Exception as exc:
            logger.error("xp_award_failed", user_id=profile.user_id, xp_awarded=xp_awarded, error=str(exc))
            return XpAward(
                xp_awarded=xp_awarded,
                total_xp=total_xp,
                leveled_up=False,
                new_level_number=new_level_number,
                remaining_xp_for_next_level=remaining,
            )

        logger.info(
            "xp_awarded",
            user_id=profile.user_id,
            xp_awarded=xp_awarded,
            total_xp=total_xp,
            level=new_level_number,
            leveled_up=leveled_up,
        )
        return XpAward(
            xp_awarded=xp_awarded,
            total_xp=total_xp,
            leveled_up=leveled_up,
            new_level_number=new_level_number,
            remaining_xp_for_next_level=remaining,
        )

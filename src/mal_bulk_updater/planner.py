"""Target status computation for a matched show."""

from typing import Optional

from .models import PlanResult, WatchStatus


def compute_plan(episode_count: Optional[int], total_episodes: Optional[int]) -> PlanResult:
    """Compute watched episodes and list status.

    No explicit episode count means the user finished the show.
    """
    total = total_episodes or 0
    if episode_count is not None:
        if total > 0 and episode_count < total:
            status = WatchStatus.WATCHING
        else:
            status = WatchStatus.COMPLETED
        return PlanResult(watched_episodes=episode_count, status=status)

    return PlanResult(watched_episodes=total, status=WatchStatus.COMPLETED)

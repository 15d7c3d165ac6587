from .session import FinishSessionRequest, SessionExerciseInput, SessionSetInput
from .summary import (
    FailedSetDetail,
    LoggedSetOverviewItem,
    MuscleGroupProgression,
    MuscleWorkedSummaryItem,
    PersonalRecordItem,
    PlanProgressionItem,
    RankChange,
    RankInfo,
    RankProgressionDetails,
    RankUpCounts,
    SessionCompletionSummary,
)

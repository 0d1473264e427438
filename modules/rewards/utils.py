REPORT_INCIDENT = "report_incident"
VERIFY_INCIDENT = "verify_incident"
HELP_OTHERS = "help_others"
DAILY_LOGIN = "daily_login"
COMPLETE_PROFILE = "complete_profile"
INVITE_USER = "invite_user"
SURVIVAL_QUIZ = "survival_quiz"

# Points awarded for each rewarded action
REWARD_POINTS = {
    REPORT_INCIDENT: 10,
    VERIFY_INCIDENT: 5,
    HELP_OTHERS: 15,
    DAILY_LOGIN: 2,
    COMPLETE_PROFILE: 20,
    INVITE_USER: 25,
    SURVIVAL_QUIZ: 15,
}

def points_for(action_type: str) -> int:
    if action_type not in REWARD_POINTS:
        raise ValueError(f"Unknown action type '{action_type}'")
    return REWARD_POINTS[action_type]

"""Constantes partagées pour l'application."""

# Seuils d'XP des niveaux de statut 1..10 (strictement croissants, premier à 0)
LEVEL_XP_THRESHOLDS = (0, 50, 150, 300, 500, 750, 1050, 1400, 1800, 2250)
LEVEL_NAMES = (
    "Beginner",
    "Explorer",
    "Adventurer",
    "Enthusiast",
    "Connoisseur",
    "Expert",
    "Master",
    "Grand Master",
    "Legend",
    "Champion",
)
MAX_LEVEL = len(LEVEL_XP_THRESHOLDS)

# Types d'activité émis par les services sources
ACTIVITY_CHECK_IN = "check_in"
ACTIVITY_REVIEW = "review"
ACTIVITY_SCAN = "scan"
ACTIVITY_ORDER = "order"
ACTIVITY_TYPES = (ACTIVITY_CHECK_IN, ACTIVITY_REVIEW, ACTIVITY_SCAN, ACTIVITY_ORDER)

# Activités qui valident la visite d'un lieu
VISIT_ACTIVITY_TYPES = (ACTIVITY_CHECK_IN, ACTIVITY_SCAN)

# Catégories d'affichage/évaluation, dans l'ordre de priorité du classifieur
CATEGORY_SPECIAL = "special"
CATEGORY_MENU_COMBO = "menu_combo"
CATEGORY_VENUE = "venue"
CATEGORY_COMBO = "combo"
CATEGORY_REGULAR = "regular"
CATEGORIES = (CATEGORY_SPECIAL, CATEGORY_MENU_COMBO, CATEGORY_VENUE, CATEGORY_COMBO, CATEGORY_REGULAR)

# Collections Mongo
COLL_CHALLENGES = "challenges"
COLL_ACTIVITIES = "activities"
COLL_PROGRESS = "user_challenge_progress"
COLL_PROGRESSIONS = "user_progressions"
COLL_REWARD_GRANTS = "reward_grants"
COLL_VENUES = "venues"
COLL_MENU_ITEMS = "menu_items"
COLL_PARKED_ACTIVITIES = "parked_activities"
COLL_CONFIG_ISSUES = "challenge_config_issues"

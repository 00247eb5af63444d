from enum import Enum


class NotificationType(str, Enum):
    TRIP_STARTED = "trip_started"
    TRIP_COMPLETED = "trip_completed"
    TRIP_CANCELLED = "trip_cancelled"
    NEXT_STEP = "next_step"
    STEP_COMPLETED = "step_completed"
    APPROACHING = "approaching"
    APPROACHING_STOP = "approaching_stop"
    JOURNEY_START = "journey_start"
    JOURNEY_COMPLETE = "journey_complete"
    JOURNEY_STOPPED = "journey_stopped"
    TRANSFER_ALERT = "transfer_alert"
    TRANSFER_IMMINENT = "transfer_imminent"
    TRANSFER_COMPLETE = "transfer_complete"
    DESTINATION_ALERT = "destination_alert"
    RATING_REQUEST = "rating_request"
    LOCATION_SHARED = "location_shared"
    LOCATION_SHARE = "location_share"
    COMMUNITY_POST = "community_post"
    CONTRIBUTION_APPROVED = "contribution_approved"
    CONTRIBUTION_REJECTED = "contribution_rejected"
    CONTRIBUTION_CHANGES_REQUESTED = "contribution_changes_requested"
    CONTRIBUTION_IMPLEMENTED = "contribution_implemented"
    SYSTEM_ALERT = "system_alert"


class NotificationChannel(str, Enum):
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"

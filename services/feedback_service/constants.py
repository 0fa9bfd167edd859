"""Constants for the Feedback Service."""

SERVICE_NAME = "feedback_service"

# Recipient identifier used when a question's recipient type is NONE
GENERAL_RECIPIENT = "%GENERAL%"

import boto3
from datetime import timezone, datetime
from enum import Enum
import json
import logging

logger = logging.getLogger(__name__)


class ReminderKind(str, Enum):
    EVENT = "EVENT"
    FINAL_PAYMENT = "FINAL_PAYMENT"


class SchedulerService:
    def __init__(self, lambda_arn: str, role_arn: str, region="ap-south-1"):
        self.client = boto3.client("scheduler", region_name=region)
        self.lambda_arn = lambda_arn
        self.role_arn = role_arn

    def schedule_reminder(self, booking_id: str, kind: ReminderKind, run_at: datetime):
        return self.schedule_at(
            name=self._reminder_name(booking_id, kind),
            run_at=run_at,
            payload={"booking_id": booking_id, "kind": kind.value},
        )

    def cancel_reminder(self, booking_id: str, kind: ReminderKind) -> bool:
        name = self._reminder_name(booking_id, kind)
        try:
            self.client.delete_schedule(Name=name)
        except self.client.exceptions.ResourceNotFoundException:
            logger.info(f"Schedule {name} already fired or was never created")
            return False
        logger.info(f"Deleted schedule {name}")
        return True

    @staticmethod
    def _reminder_name(booking_id: str, kind: ReminderKind) -> str:
        return f"reminder-{kind.value.lower()}-{booking_id}"

    def schedule_at(self, name: str, run_at: datetime, payload: dict):
        try:
            schedule_expression = self._to_at_expression(run_at)
        except ValueError as e:
            logger.error(f"Invalid time format: {e}")
            raise e

        schedule_params = {
            "Name": name,
            "ScheduleExpression": schedule_expression,
            "ScheduleExpressionTimezone": "UTC",
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "Target": {
                "Arn": self.lambda_arn,
                "RoleArn": self.role_arn,
                "Input": json.dumps(payload),
            },
            "ActionAfterCompletion": "DELETE"
        }

        try:
            self.client.create_schedule(
                **schedule_params,
                ClientToken=name
            )
            logger.info(f"Scheduled {name} at {schedule_expression}")
            return True

        except self.client.exceptions.ConflictException:
            logger.info(f"Schedule {name} exists. Updating target time.")

            self.client.update_schedule(
                **schedule_params
            )
            return True

        except Exception as e:
            logger.exception(f"Failed to create schedule {name}")
            raise e

    def _to_at_expression(self, dt: datetime) -> str:
        if isinstance(dt, str):
            dt = datetime.fromisoformat(dt)

        if dt.tzinfo is None:
            raise ValueError("run_at must be timezone-aware")

        utc_dt = dt.astimezone(timezone.utc)
        return f"at({utc_dt.strftime('%Y-%m-%dT%H:%M:%S')})"

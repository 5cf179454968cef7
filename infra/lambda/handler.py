import logging
import os
from datetime import datetime, timezone
from decimal import Decimal

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

dynamodb = boto3.resource("dynamodb", region_name=os.environ.get("AWS_REGION"))
table = dynamodb.Table(os.environ["TABLE_NAME"])


def _now():
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error(message, code):
    return {"success": False, "error": message, "code": code}


def _backend_message(exc):
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Message") or str(exc)
    return str(exc)


def _to_dynamo(value):
    # DynamoDB refuses Python floats
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {key: _to_dynamo(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(item) for item in value]
    return value


def add_user(data):
    if not isinstance(data, dict):
        data = {}
    if not data.get("id") or not data.get("email"):
        return _error("ID and email are required", "ADD_USER_ERROR")

    now = _now()
    user = {**data, "createdAt": now, "updatedAt": now}

    try:
        table.put_item(
            Item=_to_dynamo(user),
            ConditionExpression="attribute_not_exists(id)",
        )
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
            logger.info("User %s already exists", user["id"])
            return _error("User with this ID already exists", "USER_EXISTS")
        logger.error("Failed to create user %s: %s", user["id"], exc)
        return _error(_backend_message(exc), "ADD_USER_ERROR")
    except BotoCoreError as exc:
        logger.error("Failed to create user %s: %s", user["id"], exc)
        return _error(_backend_message(exc), "ADD_USER_ERROR")
    except (TypeError, ValueError) as exc:
        logger.error("Could not store user %s: %s", user["id"], exc)
        return _error(str(exc), "ADD_USER_ERROR")

    logger.info("Created user %s", user["id"])
    return {"success": True, "user": user, "message": "User created successfully"}


def get_user(user_id):
    if not isinstance(user_id, str) or not user_id:
        return _error("User ID is required", "GET_USER_ERROR")

    try:
        response = table.get_item(Key={"id": user_id})
    except (ClientError, BotoCoreError) as exc:
        logger.error("Failed to read user %s: %s", user_id, exc)
        return _error(_backend_message(exc), "GET_USER_ERROR")
    except (TypeError, ValueError) as exc:
        logger.error("Could not read user %s: %s", user_id, exc)
        return _error(str(exc), "GET_USER_ERROR")

    item = response.get("Item")
    if item is None:
        logger.info("User %s not found", user_id)
        return _error("User not found", "USER_NOT_FOUND")

    return {"success": True, "user": item}


ACTIONS = {
    "add_user": add_user,
    "get_user": lambda data: get_user(data.get("userId") if isinstance(data, dict) else None),
}


def lambda_handler(event, context=None):
    if not isinstance(event, dict):
        logger.error("Rejected malformed event of type %s", type(event).__name__)
        return _error("Internal server error", "INTERNAL_ERROR")

    action = event.get("action")
    operation = ACTIONS.get(action) if isinstance(action, str) else None
    if operation is None:
        logger.warning("Unsupported action: %r", action)
        return _error("Unsupported action", "UNSUPPORTED_ACTION")

    logger.info("Handling action %s", action)
    try:
        return operation(event.get("data") or {})
    except Exception:
        logger.exception("Unhandled error while handling action %s", action)
        return _error("Internal server error", "INTERNAL_ERROR")

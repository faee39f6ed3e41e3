"""
AWS Lambda handler for Identity Reconciliation System
This module adapts the FastAPI application to work with AWS Lambda + API Gateway
"""

import json
import logging

from mangum import Mangum

from main import app

logger = logging.getLogger(__name__)

# Configure Mangum adapter for Lambda
handler = Mangum(
    app,
    lifespan="off",
    api_gateway_base_path=None,
    text_mime_types=[
        "application/json",
        "text/plain",
        "text/html"
    ],
    exclude_headers=["x-amzn-trace-id"]
)


def _describe_event(event: dict) -> str:
    if event.get('version') == '2.0':
        http = event.get('requestContext', {}).get('http', {})
        return f"API Gateway v2 event: {http.get('method', 'UNKNOWN')} {http.get('path', 'UNKNOWN')}"
    if 'httpMethod' in event:
        return f"API Gateway v1 event: {event.get('httpMethod', 'UNKNOWN')} {event.get('path', 'UNKNOWN')}"
    return f"Unknown event format with keys {sorted(event.keys())}"


def lambda_handler(event, context):
    """
    AWS Lambda entry point

    Args:
        event: API Gateway event data
        context: Lambda runtime context

    Returns:
        API Gateway response format
    """
    logger.info(f"Lambda function: {context.function_name} ({context.function_version})")
    logger.info(_describe_event(event))

    try:
        response = handler(event, context)
        logger.info(f"Mangum response status: {response.get('statusCode', 'UNKNOWN')}")
        return response

    except Exception as e:
        logger.error(f"Lambda handler error: {e}", exc_info=True)

        return {
            "statusCode": 500,
            "headers": {
                "Content-Type": "application/json",
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
                "Access-Control-Allow-Headers": "Content-Type, Authorization"
            },
            "body": json.dumps({
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "requestId": context.aws_request_id
            })
        }

"""A module to post the commit status and comments of the CI bot via the
webhook API.

!!! info "See Also"
    - [github rest API reference for statuses](
        https://docs.github.com/en/rest/commits/statuses)
    - [github rest API reference for issue comments](
        https://docs.github.com/en/rest/issues/comments)
"""
import json
import requests
from . import Globals, logger, make_headers, log_response_msg, STATUS_CONTEXT


def cibot_report(
    webhook_api: str,
    state: str,
    description: str,
    target_url: str,
    commit: str,
    context: str = STATUS_CONTEXT,
) -> bool:
    """Set the commit status of the coverity module.

    Args:
        webhook_api: The root of the repository's REST API
            (e.g. ``https://api.github.com/repos/<owner>/<repo>``).
        state: The commit state ("success", "failure", "pending" or "error").
        description: A short description of the status.
        target_url: The URL that details the status.
        commit: The SHA of the commit to set the status of.
        context: The label that differentiates this status from others.

    Returns:
        A bool describing if the request succeeded.
    """
    statuses_url = f"{webhook_api}/statuses/{commit}"
    payload = {
        "state": state,
        "context": context,
        "description": description,
        "target_url": target_url,
    }
    logger.debug("payload body:\n%s", json.dumps(payload, indent=2))
    try:
        Globals.response_buffer = requests.post(
            statuses_url, headers=make_headers(), data=json.dumps(payload)
        )
    except requests.RequestException as exc:
        logger.error("failed to POST %s status: %s", state, exc)
        return False
    logger.info(
        "Got %d from POSTing %s status", Globals.response_buffer.status_code, state
    )
    return log_response_msg()


def cibot_comment(webhook_api: str, body: str, pr_number: str) -> bool:
    """Post a comment on the pull request.

    Args:
        webhook_api: The root of the repository's REST API.
        body: The comment (markdown) to post.
        pr_number: The number of the pull request.

    Returns:
        A bool describing if the request succeeded.
    """
    comments_url = f"{webhook_api}/issues/{pr_number}/comments"
    logger.debug("payload body:\n%s", json.dumps({"body": body}, indent=2))
    try:
        Globals.response_buffer = requests.post(
            comments_url, headers=make_headers(), data=json.dumps({"body": body})
        )
    except requests.RequestException as exc:
        logger.error("failed to POST comment: %s", exc)
        return False
    logger.info("Got %d from POSTing comment", Globals.response_buffer.status_code)
    return log_response_msg()

# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

import requests

from mxops.core.constants import DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

REJECTED_STATUSES = ("rejected", "invalid")


class MandrillSender:
    """Send html emails through the Mandrill `messages/send` endpoint."""

    def __init__(
        self,
        api_key: str,
        url: str,
        from_email: str,
        from_name: str,
        timeout: int = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(
        self,
        subject: str,
        html: str,
        recipients: Iterable[tuple[str, Optional[str]]],
    ) -> None:
        """Send a message to every recipient.

        Args:
            subject: Rendered subject.
            html: Rendered html body.
            recipients: `(email, name)` pairs.

        Raises:
            requests.HTTPError: If Mandrill answers with an error status.
        """
        to = [{"email": email, "name": name or email} for email, name in recipients]
        response = self.session.post(
            self.url,
            json={
                "key": self.api_key,
                "message": {
                    "html": html,
                    "subject": subject,
                    "from_email": self.from_email,
                    "from_name": self.from_name,
                    "to": to,
                    "preserve_recipients": False,
                },
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        results = response.json() if response.content else []
        for result in results if isinstance(results, list) else []:
            if result.get("status") in REJECTED_STATUSES:
                logger.warning(
                    f"Mandrill {result.get('status')} {result.get('email')}: "
                    f"{result.get('reject_reason')}"
                )
        logger.info(f"Sent '{subject}' to {len(to)} recipient(s)")

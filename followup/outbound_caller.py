"""
Outbound Caller Adapter - abstracts the voice agent provider that places calls

This adapter separates the provider HTTP API from dispatch logic, so the
dispatcher can be tested against the in-memory mock instead of the network.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from config.settings import ELEVENLABS_OUTBOUND_CALL_URL, OUTBOUND_CALL_TIMEOUT_SECONDS
from outreach.exceptions import OutboundCallError

logger = logging.getLogger("outbound-caller")


@dataclass
class CallVariables:
    """Dynamic variables handed to the voice agent for one call"""
    patient_name: str = ""
    clinic_name: str = ""
    call_reason: str = ""
    call_goal: str = ""

    def to_dict(self) -> Dict[str, str]:
        # Empty values are left out so the agent's own defaults apply
        values = {
            "patient_name": self.patient_name,
            "clinic_name": self.clinic_name,
            "call_reason": self.call_reason,
            "call_goal": self.call_goal,
        }
        return {key: value for key, value in values.items() if value}


@dataclass
class OutboundCallResult:
    """Result of asking the provider to place a call"""
    success: bool
    conversation_id: Optional[str] = None
    call_sid: Optional[str] = None
    error_message: Optional[str] = None


class OutboundCaller(ABC):
    """Abstract interface for placing an outbound call"""

    @abstractmethod
    def trigger(
        self,
        phone_number: str,
        agent_id: str,
        phone_number_id: str,
        variables: CallVariables,
    ) -> OutboundCallResult:
        """Place a call and return the provider's correlation id"""
        pass


class ElevenLabsOutboundCaller(OutboundCaller):
    """Places calls through the ElevenLabs conversational AI Twilio endpoint"""

    def __init__(
        self,
        api_key: str,
        api_url: str = ELEVENLABS_OUTBOUND_CALL_URL,
        timeout_seconds: float = OUTBOUND_CALL_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("An ElevenLabs API key is required to place outbound calls")
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({
            "xi-api-key": api_key,
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, settings) -> "ElevenLabsOutboundCaller":
        """Build a caller from OutboundCallSettings"""
        return cls(
            api_key=settings.api_key,
            api_url=settings.api_url,
            timeout_seconds=settings.timeout_seconds,
        )

    def build_payload(
        self,
        phone_number: str,
        agent_id: str,
        phone_number_id: str,
        variables: CallVariables,
    ) -> dict:
        payload = {
            "agent_id": agent_id,
            "agent_phone_number_id": phone_number_id,
            "to_number": phone_number,
        }
        dynamic_variables = variables.to_dict()
        if dynamic_variables:
            payload["conversation_initiation_client_data"] = {
                "dynamic_variables": dynamic_variables,
            }
        return payload

    def trigger(
        self,
        phone_number: str,
        agent_id: str,
        phone_number_id: str,
        variables: CallVariables,
    ) -> OutboundCallResult:
        """
        Ask ElevenLabs to dial a patient

        Raises:
            OutboundCallError: On transport failure, timeout, or a non-2xx response
        """
        payload = self.build_payload(phone_number, agent_id, phone_number_id, variables)

        try:
            response = self.session.post(self.api_url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            raise OutboundCallError(f"Outbound call request failed: {e}") from e

        if not response.ok:
            raise OutboundCallError(
                "Failed to trigger call via ElevenLabs",
                status_code=response.status_code,
                details=response.text,
            )

        data = response.json()
        conversation_id = data.get("conversation_id")
        if not conversation_id:
            raise OutboundCallError("ElevenLabs response did not include a conversation_id",
                                    status_code=response.status_code, details=response.text)

        logger.info(f"Outbound call placed, conversation {conversation_id}")
        return OutboundCallResult(
            success=True,
            conversation_id=conversation_id,
            call_sid=data.get("callSid"),
        )


class MockOutboundCaller(OutboundCaller):
    """In-memory implementation for tests and dry runs"""

    def __init__(self):
        self.calls_placed: List[dict] = []
        self.should_fail = False
        self.failure_error: Optional[str] = None
        self.fail_for_numbers: set = set()

    def trigger(
        self,
        phone_number: str,
        agent_id: str,
        phone_number_id: str,
        variables: CallVariables,
    ) -> OutboundCallResult:
        if self.should_fail or phone_number in self.fail_for_numbers:
            raise OutboundCallError(self.failure_error or "Mock outbound call failure")

        conversation_id = f"mock-conversation-{len(self.calls_placed) + 1}"
        self.calls_placed.append({
            "conversation_id": conversation_id,
            "phone_number": phone_number,
            "agent_id": agent_id,
            "phone_number_id": phone_number_id,
            "variables": variables.to_dict(),
        })
        return OutboundCallResult(success=True, conversation_id=conversation_id)

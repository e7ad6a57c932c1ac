"""
ContractCoordinator -- contract generation, sending, signing and rejection.

Responsibility:
    Creates Contract records through the document renderer, collects the two
    party signatures and tells the LifecycleEngine once the contract is
    fully signed.

Architecture position:
    Kernel > Services -- flush-only.  Depends on LifecycleEngine for project
    loading and the awaiting-payment transition; the renderer is injected.

Invariants enforced:
    - At most one non-rejected contract per project (checked on generate,
      unlinked on reject).
    - Signatures are unique per (contract, member); re-signing is a no-op.
    - Every signature bumps the contract's version through apply_mutation,
      so two parties signing at the same moment cannot both miss the other's
      signature.
    - SIGNED only when client and contractor have both signed.

Failure modes:
    - ExternalFailureError: renderer failed; nothing is persisted.
    - PricingMissingError / ContractorMissingError / ActiveContractExistsError.
    - InvalidTransitionError: wrong contract or project status.
    - ForbiddenError: signer is not a party.
    - ConcurrencyConflictError: lost race on the contract or project row.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from engagement_kernel.db.mutation import apply_mutation
from engagement_kernel.domain.access import Actor, Capability, Ownership, check_capability
from engagement_kernel.domain.clock import Clock
from engagement_kernel.domain.documents import ContractDocument, ContractParty, ContractRenderer
from engagement_kernel.domain.dtos import ContractInfo
from engagement_kernel.domain.enums import ContractStatus, ProjectStatus
from engagement_kernel.domain.lifecycle import CONTRACT_WORKFLOW
from engagement_kernel.domain.notices import EventSink
from engagement_kernel.exceptions import (
    ActiveContractExistsError,
    ConcurrencyConflictError,
    ContractNotFoundError,
    ContractorMissingError,
    EngagementKernelError,
    ExternalFailureError,
    InvalidTransitionError,
    PricingMissingError,
    ValidationError,
)
from engagement_kernel.logging_config import LogContext, get_logger
from engagement_kernel.models.contract import Contract, ContractSignature
from engagement_kernel.models.member import Member
from engagement_kernel.models.project import Project
from engagement_kernel.services.base import BaseService
from engagement_kernel.services.lifecycle_engine import LifecycleEngine

logger = get_logger("services.contract")

_NOT_YET_CONTRACTED = (ProjectStatus.PENDING, ProjectStatus.REVIEWED)


def contract_ownership(contract: Contract) -> Ownership:
    return Ownership(
        entity_id=contract.id,
        client_id=contract.client_id,
        contractor_id=contract.contractor_id,
    )


class ContractCoordinator(BaseService[Contract]):
    """Contract lifecycle service."""

    def __init__(
        self,
        session,
        renderer: ContractRenderer,
        clock: Clock | None = None,
        events: EventSink | None = None,
        lifecycle: LifecycleEngine | None = None,
    ):
        super().__init__(session, clock, events)
        self.renderer = renderer
        self.lifecycle = lifecycle or LifecycleEngine(session, self.clock, self.events)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def lock_contract(self, contract_id: UUID) -> Contract:
        contract = self._lock(Contract, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def _signatures(self, contract: Contract) -> list[ContractSignature]:
        return list(
            self.session.execute(
                select(ContractSignature).where(ContractSignature.contract_id == contract.id)
            ).scalars()
        )

    def _info(self, contract: Contract) -> ContractInfo:
        return ContractInfo.from_model(contract, self._signatures(contract))

    def _transition(
        self,
        contract: Contract,
        action: str,
        changes: dict | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        transition = CONTRACT_WORKFLOW.find_transition(contract.status.value, action)
        if transition is None:
            raise InvalidTransitionError(
                "contract", str(contract.id), contract.status.value, action
            )
        from_status = contract.status
        to_status = ContractStatus(transition.to_state)
        apply_mutation(
            self.session,
            contract,
            {"status": to_status, **(changes or {})},
            now=self.clock.now(),
            expected_status=from_status,
        )
        logger.info(
            "contract_transitioned",
            extra={
                "contract_id": str(contract.id),
                "project_id": str(contract.project_id),
                "action": action,
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        if transition.notice:
            self._publish(
                transition.notice,
                entity_id=contract.id,
                project_id=contract.project_id,
                actor_id=actor_id,
                from_status=from_status.value,
                to_status=to_status.value,
            )

    @staticmethod
    def _party(member: Member) -> ContractParty:
        return ContractParty(
            member_id=member.id,
            display_name=member.display_name,
            email=member.email,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate(self, actor: Actor, project_id: UUID) -> ContractInfo:
        """
        Render and store a new PENDING contract for the project.

        Preconditions:
            Project is PENDING or REVIEWED, priced, has a contractor and no
            non-rejected contract.
        """
        check_capability(actor, Capability.GENERATE_CONTRACT, Ownership(entity_id=project_id))
        project = self.lifecycle.lock_project(project_id)

        if project.status not in _NOT_YET_CONTRACTED:
            raise InvalidTransitionError(
                "project", str(project.id), project.status.value, "generate_contract"
            )
        if not project.has_pricing:
            raise PricingMissingError(str(project.id))
        if project.contractor_id is None:
            raise ContractorMissingError(str(project.id))
        if project.contract_id is not None:
            raise ActiveContractExistsError(str(project.id), str(project.contract_id))

        now = self.clock.now()
        contract_id = uuid4()
        document = ContractDocument(
            contract_id=contract_id,
            project_id=project.id,
            project_title=project.title,
            project_description=project.description,
            pricing=project.pricing,
            client=self._party(self.session.get(Member, project.client_id)),
            contractor=self._party(self.session.get(Member, project.contractor_id)),
            generated_at=now,
        )

        with LogContext.bind(project_id=project.id, contract_id=contract_id):
            file_path = self._render(document)
            try:
                contract = self._store(project, contract_id, file_path, now)
            except Exception:
                # A lost race or failed flush leaves no row pointing at the file.
                self.renderer.discard(file_path)
                raise
            logger.info("contract_generated", extra={"file_path": file_path})

        self._publish(
            "contract.generated",
            entity_id=contract.id,
            project_id=project.id,
            actor_id=actor.id,
            to_status=ContractStatus.PENDING.value,
        )
        return self._info(contract)

    def _store(
        self, project: Project, contract_id: UUID, file_path: str, now: datetime
    ) -> Contract:
        contract = Contract(
            id=contract_id,
            project_id=project.id,
            client_id=project.client_id,
            contractor_id=project.contractor_id,
            file_path=file_path,
            status=ContractStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.session.add(contract)
        self.session.flush()

        apply_mutation(
            self.session,
            project,
            {"contract_id": contract.id},
            now=now,
            expected_status=project.status,
        )
        return contract

    def _render(self, document: ContractDocument) -> str:
        try:
            file_path = self.renderer.render(document)
        except EngagementKernelError:
            raise
        except Exception as exc:
            logger.error(
                "contract_render_failed",
                extra={"error": str(exc)},
                exc_info=True,
            )
            raise ExternalFailureError("document_renderer", str(exc)) from exc
        if not file_path:
            raise ExternalFailureError("document_renderer", "no file reference returned")
        return file_path

    def send(self, contract_id: UUID, actor: Actor | None = None) -> ContractInfo:
        """PENDING -> SENT."""
        if actor is not None:
            check_capability(actor, Capability.SEND_CONTRACT, Ownership(entity_id=contract_id))
        contract = self.lock_contract(contract_id)
        self._transition(contract, "send", actor_id=actor.id if actor else None)
        return self._info(contract)

    def sign(self, actor: Actor, contract_id: UUID, signature: str) -> ContractInfo:
        """
        Record ``actor``'s signature.

        Postconditions:
            - Re-signing by the same party returns the unchanged contract.
            - When this signature completes the pair, the contract is SIGNED
              and the project moves to AWAITING_PAYMENT in the same
              transaction.
        """
        if not isinstance(signature, str) or not signature.strip():
            raise ValidationError("signature", "must not be empty")

        contract = self.lock_contract(contract_id)
        check_capability(actor, Capability.SIGN_CONTRACT, contract_ownership(contract))

        if contract.status == ContractStatus.REJECTED:
            raise InvalidTransitionError(
                "contract", str(contract.id), contract.status.value, "sign"
            )

        signatures = self._signatures(contract)
        signed_ids = {s.member_id for s in signatures}
        if actor.id in signed_ids:
            logger.info(
                "contract_resign_ignored",
                extra={"contract_id": str(contract.id), "member_id": str(actor.id)},
            )
            return ContractInfo.from_model(contract, signatures)

        now = self.clock.now()
        self.session.add(
            ContractSignature(
                contract_id=contract.id,
                member_id=actor.id,
                signature=signature.strip(),
                signed_at=now,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError("contract_signatures", str(contract.id)) from exc

        signed_ids.add(actor.id)
        logger.info(
            "contract_signature_added",
            extra={
                "contract_id": str(contract.id),
                "member_id": str(actor.id),
                "signature_count": len(signed_ids),
            },
        )

        if contract.party_ids() <= signed_ids:
            self._transition(contract, "sign", actor_id=actor.id)
            self.lifecycle.mark_awaiting_payment(contract.project_id)
        else:
            # Version bump only: serializes the two parties' signatures.
            apply_mutation(
                self.session,
                contract,
                {},
                now=now,
                expected_status=contract.status,
            )
        return self._info(contract)

    def reject(self, actor: Actor, contract_id: UUID, reason: str | None = None) -> ContractInfo:
        """
        PENDING | SENT -> REJECTED and unlink it from the project.

        The project itself is not cancelled; a new contract can be generated.
        """
        contract = self.lock_contract(contract_id)
        check_capability(actor, Capability.REJECT_CONTRACT, contract_ownership(contract))
        reason = (reason or "").strip() or None

        self._transition(
            contract,
            "reject",
            {"rejection_reason": reason},
            actor_id=actor.id,
        )

        project = self.lifecycle.lock_project(contract.project_id)
        if project.contract_id == contract.id:
            apply_mutation(
                self.session,
                project,
                {"contract_id": None},
                now=self.clock.now(),
                expected_status=project.status,
            )
        return self._info(contract)


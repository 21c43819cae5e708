# ==== ACCESS-CONSISTENCY RESOLVER ==== #

"""
Access verification and self-repair for the user/business relation.

The relation between a user and a business is stored twice: a link under the
user (``users/{uid}/businesses/{bid}``) and a membership under the business
(``businesses/{bid}/users/{uid}``). Either copy, the business owner pointer or
a role left on the user profile is enough evidence of access. Once access is
established the resolver materializes whatever copy is missing, so repeated
verifications converge and then stop writing.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from procurement_core.business.permissions import (
    DEFAULT_MEMBER_ROLE,
    OWNER_ROLE,
    full_permissions,
    permissions_for_role,
)
from procurement_core.errors import NotFoundError, PermissionDeniedError
from procurement_core.observability.logging import get_logger, log_business_event
from procurement_core.observability.metrics import (
    access_checks_total,
    access_repair_failures_total,
    access_repairs_total,
)
from procurement_core.observability.tracing import get_tracer
from procurement_core.schemas import utc_now_iso
from procurement_core.schemas.access import AccessEvidence, BusinessMembership, UserBusinessLink
from procurement_core.storage import paths
from procurement_core.storage.store import Record, RecordStore


# ==== MODULE INITIALIZATION ==== #

tracer = get_tracer(__name__)
logger = get_logger(__name__)

OWNER_NAME_FALLBACK = "Business Owner"


# ==== RELATION SNAPSHOT ==== #


@dataclass
class RelationState:
    """Records read for one (user, business) pair before deciding or repairing."""

    business: Optional[Record]
    membership: Optional[Record]
    link: Optional[Record]
    user: Optional[Record]

    @property
    def owner_id(self) -> Optional[str]:
        return (self.business or {}).get("ownerId")


@dataclass
class AccessDecision:
    """Outcome of the decision table: the evidence found and the role it implies."""

    evidence: AccessEvidence
    role: str
    created_at: Optional[str] = None


# ==== RESOLVER ==== #


class AccessResolver:
    """
    Verifies and repairs the two-sided user/business relation.

    Verification never raises for expected absence: a missing business or a
    complete lack of evidence yields ``False``. Store read failures also yield
    ``False``. Repair writes are best effort; their failures are logged and do
    not change a granted verification.
    """

    def __init__(self, store: RecordStore):
        self.store = store


    # ==== SNAPSHOT LOADING ==== #


    async def load_state(self, user_id: str, business_id: str) -> RelationState:
        """
        Read the business, both relation copies and the user profile.

        The business is read first; when it is missing the other reads are
        skipped.
        """
        business = await self.store.get(paths.business_path(business_id))
        if business is None:
            return RelationState(business=None, membership=None, link=None, user=None)

        membership, link, user = await asyncio.gather(
            self.store.get(paths.membership_path(business_id, user_id)),
            self.store.get(paths.link_path(user_id, business_id)),
            self.store.get(paths.user_path(user_id)),
        )
        return RelationState(business=business, membership=membership, link=link, user=user)


    # ==== DECISION ==== #


    @staticmethod
    def decide(user_id: str, state: RelationState) -> Optional[AccessDecision]:
        """
        Apply the evidence order: owner, membership, link, profile role.

        Args:
            user_id (str): User being verified
            state (RelationState): Records read for the pair

        Returns:
            Optional[AccessDecision]: The first matching evidence, or None
        """
        if state.business is None:
            return None

        if state.owner_id == user_id:
            return AccessDecision(AccessEvidence.OWNER, OWNER_ROLE)

        if state.membership is not None:
            return AccessDecision(
                AccessEvidence.MEMBERSHIP,
                state.membership.get("role") or DEFAULT_MEMBER_ROLE,
                state.membership.get("createdAt"),
            )

        if state.link is not None:
            return AccessDecision(
                AccessEvidence.LINK,
                state.link.get("role") or DEFAULT_MEMBER_ROLE,
                state.link.get("createdAt"),
            )

        profile_role = (state.user or {}).get("role")
        if profile_role:
            return AccessDecision(AccessEvidence.PROFILE_ROLE, profile_role)

        return None


    # ==== VERIFICATION ==== #


    async def verify_access(self, user_id: str, business_id: str) -> bool:
        """
        Confirm that a user may access a business, healing the relation.

        Args:
            user_id (str): User identifier
            business_id (str): Business identifier

        Returns:
            bool: True when any evidence of access exists
        """
        if not user_id or not business_id:
            return False

        with tracer.start_as_current_span("access.verify") as span:
            span.set_attribute("user_id", user_id)
            span.set_attribute("business_id", business_id)

            try:
                state = await self.load_state(user_id, business_id)
            except Exception as e:
                logger.error(
                    "Access verification failed reading relation records",
                    user_id=user_id, business_id=business_id, error=str(e)
                )
                access_checks_total.labels(path="error").inc()
                span.set_attribute("access.granted", False)
                return False

            if state.business is None:
                logger.warning("Business does not exist", business_id=business_id, user_id=user_id)
                access_checks_total.labels(path="missing_business").inc()
                span.set_attribute("access.granted", False)
                return False

            decision = self.decide(user_id, state)
            if decision is None:
                logger.info(
                    "No relation found; user needs manual association",
                    user_id=user_id, business_id=business_id
                )
                access_checks_total.labels(path="denied").inc()
                span.set_attribute("access.granted", False)
                return False

            access_checks_total.labels(path=decision.evidence.value).inc()
            span.set_attribute("access.granted", True)
            span.set_attribute("access.evidence", decision.evidence.value)

            repaired = await self.ensure_link(
                user_id,
                business_id,
                decision.role,
                created_at=decision.created_at,
                evidence=decision.evidence,
                state=state,
            )
            span.set_attribute("access.repaired", len(repaired))
            return True


    # ==== REPAIR ==== #


    async def ensure_link(
        self,
        user_id: str,
        business_id: str,
        role: str,
        *,
        created_at: Optional[str] = None,
        evidence: AccessEvidence = AccessEvidence.PROFILE_ROLE,
        state: Optional[RelationState] = None,
    ) -> List[str]:
        """
        Make both relation copies and the user's ``businessId`` exist.

        Each write is guarded by an existence check so customized records are
        never overwritten. For the owner both copies are materialized as
        ``admin`` with full permissions; otherwise a missing copy takes the role
        of the copy that exists, falling back to ``role``. Write failures are logged and
        skipped; the next call completes the missing half.

        Args:
            user_id (str): User identifier
            business_id (str): Business identifier
            role (str): Role to use when neither copy carries one
            created_at (Optional[str]): Creation time for materialized records
            evidence (AccessEvidence): Why access was granted, for logging
            state (Optional[RelationState]): Records already read, if any

        Returns:
            List[str]: Names of the records written (membership, link, user_business_id)

        Raises:
            NotFoundError: The business does not exist
        """
        if state is None:
            state = await self.load_state(user_id, business_id)
        if state.business is None:
            raise NotFoundError("business", paths.business_path(business_id))

        created_at = str(created_at) if created_at else utc_now_iso()
        user = state.user or {}
        owner = evidence is AccessEvidence.OWNER
        repaired: List[str] = []

        if state.membership is None:
            if owner:
                membership_role = OWNER_ROLE
                permissions = full_permissions()
            else:
                membership_role = (state.link or {}).get("role") or role
                permissions = permissions_for_role(membership_role)
            name = user.get("name") or ""
            if owner and not name:
                name = OWNER_NAME_FALLBACK
            membership = BusinessMembership(
                user_id=user_id,
                role=membership_role,
                permissions=permissions,
                email=user.get("email") or "",
                name=name,
                created_at=created_at,
            )
            if await self._repair_write(
                "membership", paths.membership_path(business_id, user_id),
                membership.to_record(), user_id, business_id, evidence,
            ):
                repaired.append("membership")

        if state.link is None:
            link_role = OWNER_ROLE if owner else (state.membership or {}).get("role") or role
            link = UserBusinessLink(business_id=business_id, role=link_role, created_at=created_at)
            if await self._repair_write(
                "link", paths.link_path(user_id, business_id),
                link.to_record(), user_id, business_id, evidence,
            ):
                repaired.append("link")

        if state.user is not None and not state.user.get("businessId"):
            if await self._repair_write(
                "user_business_id", paths.user_path(user_id),
                {"businessId": business_id}, user_id, business_id, evidence, merge=True,
            ):
                repaired.append("user_business_id")

        if repaired:
            log_business_event(
                "access_repaired", business_id,
                user_id=user_id, evidence=evidence.value, records=repaired
            )
        return repaired

    async def _repair_write(
        self,
        record: str,
        path: str,
        data: Mapping[str, Any],
        user_id: str,
        business_id: str,
        evidence: AccessEvidence,
        merge: bool = False,
    ) -> bool:
        try:
            await self.store.set(path, dict(data), merge=merge)
        except Exception as e:
            logger.warning(
                "Relation repair write failed; leaving it for the next verification",
                record=record, path=path, user_id=user_id,
                business_id=business_id, evidence=evidence.value, error=str(e)
            )
            access_repair_failures_total.labels(record=record).inc()
            return False

        access_repairs_total.labels(record=record).inc()
        logger.info("Materialized missing relation record", record=record, path=path)
        return True


    # ==== PERMISSION PRE-CHECK ==== #


    async def check_permission(self, user_id: str, business_id: str, collection_name: str) -> bool:
        """
        Owner-or-member check performed before loading a business collection.

        Unlike ``verify_access`` this never repairs anything and raises instead
        of returning False.

        Raises:
            PermissionDeniedError: Invalid ids, missing business or no membership
            TransientStoreError: The store could not be read
        """
        if not user_id or not business_id:
            raise PermissionDeniedError(
                f"Access denied: invalid user ID ({user_id}) or business ID ({business_id})",
                user_id=user_id, business_id=business_id,
            )

        business = await self.store.get(paths.business_path(business_id))
        if business is None:
            raise PermissionDeniedError(
                f"Access denied: business {business_id} does not exist",
                user_id=user_id, business_id=business_id,
            )

        if business.get("ownerId") == user_id:
            logger.debug("Owner access granted", user_id=user_id, business_id=business_id,
                         collection=collection_name)
            return True

        membership = await self.store.get(paths.membership_path(business_id, user_id))
        if membership is None:
            logger.warning(
                "Permission check failed", user_id=user_id,
                business_id=business_id, collection=collection_name
            )
            raise PermissionDeniedError(
                f"Access denied: user {user_id} is not associated with business {business_id}",
                user_id=user_id, business_id=business_id,
            )

        logger.debug("Member access granted", user_id=user_id, business_id=business_id,
                     collection=collection_name, role=membership.get("role"))
        return True


    # ==== BUSINESS ID RESOLUTION ==== #


    async def resolve_business_id(
        self,
        user: Optional[Mapping[str, Any]],
        business: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """
        Pick the business a user is working in.

        Tries the current business object, then the user's ``businessId``,
        then the first link under the user.
        """
        if business and business.get("id"):
            return business["id"]

        if user and user.get("businessId"):
            return user["businessId"]

        if user and user.get("id"):
            try:
                links = await self.store.query(paths.user_links_path(user["id"]), limit=1)
            except Exception as e:
                logger.error("Could not list user's businesses", user_id=user["id"], error=str(e))
                return None
            if links:
                return links[0]["id"]

        return None

"""Campaign template catalog and tag campaign management.

The catalog holds the named message sequences admins start from when
creating a tag campaign: fourteen multi-day drip sequences for common
lost-deal reasons and six single-message pivot scripts. Message text may
contain the {first_name} placeholder, filled in by the automation platform.
"""
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import INITIAL_MESSAGE_TAG
from db.models import TagCampaign
from db.repositories import tag_campaigns as campaigns_repo
from db.repositories import users as users_repo
from errors import AuthorizationError, CampaignValidationError
from schemas.campaign import CampaignMessage, CampaignTemplate, TagCampaignForm

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 160


def _template(name: str, identifier: str, *messages: tuple[int, str]) -> CampaignTemplate:
    return CampaignTemplate(
        name=name,
        identifier=identifier,
        messages=[CampaignMessage(day=day, content=content) for day, content in messages],
    )


CAMPAIGN_TEMPLATES: list[CampaignTemplate] = [
    # Drip sequences
    _template(
        "Ghosted / No Response", "Ghosted",
        (1, "Hey, just checking in. Are you still exploring vehicle options or did plans change?"),
        (2, "I’ve got a couple options that fit what you were originally looking for. Want me to send them over?"),
        (4, "If the right payment and the right vehicle came up, would you be open to taking another look?"),
        (6, "Before I close out your file, want me to keep sending options or pause it for now?"),
    ),
    _template(
        "Payment Too High", "Payment_Issue",
        (1, "Good timing. Some payments on the vehicles you liked have come down. Want updated numbers?"),
        (2, "I can structure things differently now. Sometimes a small adjustment solves the payment issue. Want me to show you?"),
        (4, "If I could get you closer to your ideal monthly payment, would you want to reopen the conversation?"),
        (6, "I don’t want you to miss a lower payment if it’s available. Should I run a new quote for you?"),
    ),
    _template(
        "Credit Declined Previously", "Credit_Declined",
        (1, "We have updated lenders for challenged credit. Want me to take another shot at approvals?"),
        (2, "Some lenders are approving situations similar to yours from the last couple of weeks. Want me to check again?"),
        (4, "I can try to get you approved without increasing your payment. Should I recheck it?"),
        (6, "This is the best window we’ve had lately for approvals. Want me to run a fresh one before I close the file?"),
    ),
    _template(
        "Waiting / Timing Not Right", "Timing_Issue",
        (1, "You mentioned timing wasn’t right earlier. Just checking in to see if things have changed."),
        (3, "Inventory and rates shifted a bit, which sometimes makes the timing better. Want to see what’s available now?"),
        (5, "If the right deal came up earlier than expected, would you want me to send it to you?"),
        (7, "I can keep you updated only when something perfect shows up. Want me to set that up?"),
    ),
    _template(
        "Couldn’t Find the Right Vehicle", "Inventory_Issue",
        (1, "New inventory just arrived that fits what you originally wanted. Want me to send options?"),
        (2, "I think I found a couple vehicles that match your wishlist more closely. Want to see them?"),
        (4, "I can search manually for you every morning if you want. What’s the one non-negotiable feature?"),
        (6, "Before I close your file, want me to send the newest arrivals that might be a fit?"),
    ),
    _template(
        "Needed More Info / Confusion", "More_Info",
        (1, "I can break everything down simply. Which part do you want clarity on first?"),
        (2, "I can send you a clean breakdown of payment, rate, warranty and all costs if you’d like."),
        (4, "Most people are surprised how simple the numbers look once I outline everything. Want me to send the summary?"),
        (6, "Just checking in. Want a clear all-in breakdown before I close this file?"),
    ),
    _template(
        "Process Took Too Long", "Process_Delay",
        (1, "Good news. The approval process is much faster now. Want me to reopen your file?"),
        (3, "We fixed the delays from last time. I can get you results way quicker now."),
        (5, "I can fast-track your file personally if timing was the issue. Want to restart?"),
        (7, "I can submit your file immediately if you’re ready. Want me to go ahead?"),
    ),
    _template(
        "Bought Elsewhere", "Lost_Sale",
        (1, "Congrats on the purchase! Anything I could improve for next time?"),
        (3, "If the rate was higher than you wanted, I can check refinancing options anytime."),
        (10, "Whenever you’re thinking upgrade or second vehicle, I’m always here to help."),
        (30, "Hope the vehicle is treating you well. If anything changes, just message me anytime."),
    ),
    _template(
        "Wanted to Improve Credit First", "Credit_Improvement",
        (1, "Some lenders approve earlier in the rebuilding process. Want me to recheck your options?"),
        (3, "I can look at credit-friendly programs for you. Chances are better right now."),
        (5, "If I can get you approved without hurting your credit score, should I try again?"),
        (7, "I can rerun your file anytime with no pressure. Want me to try once more?"),
    ),
    _template(
        "Negative Equity / Trade-In Issue", "Negative_Equity",
        (1, "We have stronger programs for negative equity now. Want me to rework your trade numbers?"),
        (2, "I might be able to reduce the amount rolling into the new loan. Want me to check?"),
        (4, "I found a couple ways to soften the trade hit. Want to see what’s available?"),
        (6, "Last call before I close your file. Want me to see if your trade position improved?"),
    ),
    _template(
        "Needed a Cosigner", "Cosigner_Needed",
        (1, "If you’re still considering a cosigner, I can re-run the joint approval."),
        (3, "Lenders are being more flexible on cosigned apps right now. Want me to try again?"),
        (5, "I can try to get you approved with or without a cosigner. Want me to look at both options?"),
        (7, "Before I close your file, should I try one last approval with the updated programs?"),
    ),
    _template(
        "Didn’t Like the Approved Vehicle", "Vehicle_Dislike",
        (1, "New options came in that might fit your style better. Want to see them?"),
        (3, "If I can find something closer to what you expected, should I send choices?"),
        (5, "We now have more vehicles approved for similar credit profiles. Want me to check?"),
        (7, "Want me to keep you updated only when better matches come in?"),
    ),
    _template(
        "Rate Too High", "Rate_Issue",
        (1, "Rates dropped with a few lenders. Want me to recheck yours?"),
        (2, "I might be able to get you a better rate now. Want me to run the new numbers?"),
        (4, "If rate was the only concern, I can try to bring it down. Should I take a look?"),
        (6, "Want me to run one last check on the updated rates before I close this file?"),
    ),
    _template(
        "Missing Documents", "Missing_Docs",
        (1, "If you have the documents now, I can reopen your approval. Want to try again?"),
        (2, "I can walk you through the document list step by step so it’s easy."),
        (4, "If documents were the issue, I can simplify the process. Want me to send the list again?"),
        (6, "Just checking in. Do you want help gathering the documents so we can continue?"),
    ),
    # Pivot scripts (single message)
    _template(
        "Personal Loan -> Auto Loan Pivot", "Pivot_Personal",
        (1, "Many clients who were looking at personal loans ended up qualifying easier for an auto loan, often with better monthly payment options. We work with lenders who approve a wide range of credit situations. Want me to check what you qualify for?"),
    ),
    _template(
        "Mortgage -> Auto Loan Pivot", "Pivot_Mortgage",
        (1, "Some clients waiting on mortgage decisions found that an auto loan was simpler to approve and helped stabilize their monthly budget. Our lenders often approve quicker with lower entry requirements. Want me to show you your auto loan options?"),
    ),
    _template(
        "Debt Collection -> Auto Loan Pivot", "Pivot_Collection",
        (1, "We work with lenders who offer auto loans even for clients managing past-due accounts, and many find the payments surprisingly manageable. If transportation is something you’re organizing, I can show flexible approval options that fit your situation."),
    ),
    _template(
        "Debt Consolidation -> Auto Loan Pivot", "Pivot_Consolidation",
        (1, "Many clients exploring consolidation discovered that an auto loan gave them a lower, more predictable monthly payment. Our programs include flexible approvals with competitive terms. Want me to check what you’d qualify for?"),
    ),
    _template(
        "Credit Repair -> Auto Loan Pivot", "Pivot_CreditRepair",
        (1, "We help many people in the middle of rebuilding their credit get approved for auto loans sooner than expected. It can even help strengthen your profile long term. Want me to check your updated approval options?"),
    ),
    _template(
        "Auto Refinance -> New Auto Loan Pivot", "Pivot_Refinance",
        (1, "Some clients looking to refinance found that upgrading into a newer vehicle actually gave them better terms and a more comfortable payment. Our lenders have strong programs for trades and transitions. Want me to show you what’s available?"),
    ),
]


def get_template(key: str) -> Optional[CampaignTemplate]:
    """Find a template by display name or tag identifier."""
    for template in CAMPAIGN_TEMPLATES:
        if key in (template.name, template.identifier):
            return template
    return None


def default_days(count: int) -> list[int]:
    """Day numbers a blank n-message campaign starts with: 1, 4, 6, 8..."""
    return [1 if i == 0 else (i + 1) * 2 for i in range(count)]


def render_message(template: str, first_name: str) -> str:
    return template.replace("{first_name}", first_name)


def validate_campaign(form: TagCampaignForm, initial: bool = False) -> None:
    """Raise CampaignValidationError describing the first problem found.

    initial=True applies the Initial_Message rules: the first message goes
    out on day 1 and every later message on a strictly later day.
    """
    if not initial and (not form.name.strip() or not form.tag.strip()):
        raise CampaignValidationError("Please fill in Tag Name and Tag Identifier")
    if not form.messages:
        raise CampaignValidationError("A campaign needs at least one message")
    if any(not msg.content.strip() for msg in form.messages):
        raise CampaignValidationError("All messages must have content")
    if any(len(msg.content) > MAX_MESSAGE_LENGTH for msg in form.messages):
        raise CampaignValidationError(
            f"Messages must be {MAX_MESSAGE_LENGTH} characters or less"
        )

    days = [msg.day for msg in form.messages]
    if initial:
        if days[0] != 1:
            raise CampaignValidationError("The initial message must be sent on day 1")
        if any(day == 0 for day in days[1:]):
            raise CampaignValidationError(
                "Please set day numbers for all follow-up messages"
            )
        if any(later <= earlier for earlier, later in zip(days, days[1:])):
            raise CampaignValidationError(
                "Each message must be scheduled for a later day than the previous one"
            )
        return

    if any(day < 1 for day in days):
        raise CampaignValidationError("Day numbers must be 1 or greater")
    if any(later < earlier for earlier, later in zip(days, days[1:])):
        raise CampaignValidationError("Day numbers must not decrease")


def _message_rows(messages: Iterable[CampaignMessage]) -> list[dict]:
    return [{"day_number": msg.day, "message_template": msg.content} for msg in messages]


def form_from_template(template: CampaignTemplate) -> TagCampaignForm:
    return TagCampaignForm(
        name=template.name, tag=template.identifier, messages=list(template.messages)
    )


async def _require_admin(session: AsyncSession, actor_id: UUID) -> None:
    if not await users_repo.is_admin(session, actor_id):
        raise AuthorizationError("Only admins can manage tag campaigns")


async def create_campaign(
    session: AsyncSession, actor_id: UUID, form: TagCampaignForm
) -> TagCampaign:
    await _require_admin(session, actor_id)
    if form.tag.strip() == INITIAL_MESSAGE_TAG:
        raise CampaignValidationError(
            f"{INITIAL_MESSAGE_TAG} is reserved; edit the initial message sequence instead"
        )
    validate_campaign(form)
    campaign = await campaigns_repo.create_campaign(
        session,
        tag=form.tag.strip(),
        name=form.name.strip(),
        messages=_message_rows(form.messages),
        user_id=actor_id,
    )
    await session.commit()
    return campaign


async def update_campaign(
    session: AsyncSession, actor_id: UUID, campaign_id: UUID, form: TagCampaignForm
) -> TagCampaign:
    await _require_admin(session, actor_id)
    if form.tag.strip() == INITIAL_MESSAGE_TAG:
        raise CampaignValidationError(
            f"{INITIAL_MESSAGE_TAG} is reserved; edit the initial message sequence instead"
        )
    existing = await campaigns_repo.get(session, campaign_id)
    if existing is None:
        raise CampaignValidationError(f"Campaign {campaign_id} not found")
    if existing.tag == INITIAL_MESSAGE_TAG:
        raise CampaignValidationError(
            "The initial message sequence is edited with save_initial_message"
        )
    validate_campaign(form)
    campaign = await campaigns_repo.update_campaign(
        session,
        campaign_id,
        tag=form.tag.strip(),
        name=form.name.strip(),
        messages=_message_rows(form.messages),
    )
    await session.commit()
    return campaign


async def delete_campaign(session: AsyncSession, actor_id: UUID, campaign_id: UUID) -> bool:
    await _require_admin(session, actor_id)
    deleted = await campaigns_repo.delete_campaign(session, campaign_id, actor_id)
    await session.commit()
    return deleted


async def save_initial_message(
    session: AsyncSession, actor_id: UUID, messages: list[CampaignMessage]
) -> TagCampaign:
    """Validate and store the system-level Initial_Message sequence."""
    await _require_admin(session, actor_id)
    validate_campaign(
        TagCampaignForm(tag=INITIAL_MESSAGE_TAG, messages=messages), initial=True
    )
    campaign = await campaigns_repo.save_initial_message(session, _message_rows(messages))
    await session.commit()
    return campaign


async def seed_from_catalog(
    session: AsyncSession, user_id: Optional[UUID] = None, names: Optional[Iterable[str]] = None
) -> dict[str, str]:
    """Create campaigns from catalog templates.

    Returns {identifier: outcome} where outcome is "created", "exists", or
    the validation message for templates that cannot be stored as-is
    (single SMS length limit).
    """
    if names is None:
        templates = list(CAMPAIGN_TEMPLATES)
    else:
        templates = []
        for name in names:
            template = get_template(name)
            if template is None:
                raise KeyError(f"No campaign template named {name!r}")
            templates.append(template)

    outcomes = {}
    for template in templates:
        if await campaigns_repo.get_by_tag(session, template.identifier) is not None:
            outcomes[template.identifier] = "exists"
            continue
        try:
            validate_campaign(form_from_template(template))
        except CampaignValidationError as exc:
            logger.warning("Skipping template %s: %s", template.identifier, exc)
            outcomes[template.identifier] = str(exc)
            continue
        await campaigns_repo.create_campaign(
            session,
            tag=template.identifier,
            name=template.name,
            messages=_message_rows(template.messages),
            user_id=user_id,
        )
        outcomes[template.identifier] = "created"
    await session.commit()
    return outcomes

from __future__ import annotations

from typing import Optional

MARKDOWN = "Markdown"

ADMIN_GREETING = "👋 Hello Admin!"

ADMIN_HELP = """
🛠️ *Admin Commands*
/approve <tgId> → Approve candidate
/revoke <tgId> → Revoke candidate
/list → Show all candidates
/report [candidateId] → Generate report (all or one candidate)
/export → Export answers as CSV
/help → Show this message
"""

CANDIDATE_HELP = """
📋 *Candidate Instructions*
1. Wait for admin approval before starting.
2. Complete *identity verification* with your selfie.
3. Answer each question honestly in *your own words* (text or voice).
4. Avoid malpractice (copy-paste, duplicate answers, very short replies).
5. Your answers will be stored for admin review.

✅ At the end, you'll see a confirmation message.
/help → Show this message again
"""

NOT_APPROVED = "🚫 You are not approved to take this interview. Please contact the admin."
ALREADY_COMPLETED = "✅ You have already completed this interview. Thank you!"
ACTIVE_ELSEWHERE = "⚠️ Your interview is already running in another chat. Please continue there."
CODE_MISMATCH = "⚠️ The code in your caption does not match. Please resend the selfie with the correct code."
LOW_QUALITY_SELFIE = "⚠️ Low quality image detected. Consider retaking for clarity."
VOICE_TOO_SHORT = "⚠️ Voice answer is too short; please elaborate."
INTEGRITY_WARNING = "⚠️ Your last answer raised multiple red flags. Please answer in your own words."
COMPLETED = "✅ Interview completed. Thank you! You will be contacted soon."
TEMPORARY_FAILURE = "⚠️ Something went wrong while saving your reply. Please send it again."
VOICE_PLACEHOLDER = "[voice message]"


def welcome(first_name: Optional[str]) -> str:
    return (
        f"👋 Welcome {first_name or ''}! This interview has 3 sections:\n\n"
        "1️⃣ Identity check\n2️⃣ Core questions\n3️⃣ Final confirmation"
    )


def challenge(code: str) -> str:
    return f"📸 Identity check:\nPlease send a *CLEAR selfie* holding a paper with the code: *{code}* as the caption."


def question(index: int, text: str) -> str:
    return f"❓ Question {index + 1}: {text}"

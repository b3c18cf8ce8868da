"""
Keyword-based analysis of a finished call.

The lead score is a weighted mean of five factor scores (each 0-100):

    contact info   25   name / phone / email captured
    intent         30   buying, selling and urgency language
    engagement     20   call length and how much the caller answered
    qualification  15   budget, timeline, property type, location
    urgency        10   how soon the caller wants to act
"""

import logging
from typing import Dict, List, Tuple

from app.modules.webhooks.schemas import (
    CallAnalysisResult,
    Engagement,
    ExtractedResponse,
    Intent,
    Sentiment,
    Topics,
)

logger = logging.getLogger(__name__)

CONTACT_WEIGHT = 25
INTENT_WEIGHT = 30
ENGAGEMENT_WEIGHT = 20
QUALIFICATION_WEIGHT = 15
URGENCY_WEIGHT = 10

NAME_FIELDS = ("full_name", "first_name", "last_name")

BUYING_KEYWORDS = ["buy", "purchase", "looking for", "need", "want to buy", "ready to buy"]
SELLING_KEYWORDS = ["sell", "selling", "list", "market", "want to sell"]
URGENCY_KEYWORDS = ["immediately", "asap", "urgent", "right away", "this week", "this month"]
HESITATION_KEYWORDS = ["just curious", "just looking", "maybe", "not sure", "thinking about"]

HIGH_URGENCY = ["immediately", "asap", "urgent", "right away", "this week"]
MEDIUM_URGENCY = ["soon", "this month", "next month", "few weeks"]
LOW_URGENCY = ["eventually", "someday", "no rush", "just exploring"]

POSITIVE_KEYWORDS = ["great", "excellent", "perfect", "love", "amazing", "wonderful", "fantastic"]
NEGATIVE_KEYWORDS = ["terrible", "awful", "hate", "disappointed", "frustrated", "angry"]
NEUTRAL_KEYWORDS = ["okay", "fine", "alright", "maybe", "possibly"]

INTENT_KEYWORDS: Dict[str, List[str]] = {
    "buying": ["buy", "purchase", "looking for", "need a", "want to buy"],
    "selling": ["sell", "selling", "list my", "market my"],
    "investing": ["invest", "investment", "rental", "flip"],
    "renting": ["rent", "rental", "lease", "tenant"],
    "information": ["information", "learn", "curious", "wondering"],
}

TOPIC_KEYWORDS: Dict[str, Dict[str, List[str]]] = {
    "key_topics": {
        "price": ["price", "cost", "expensive", "cheap", "afford", "budget"],
        "location": ["location", "area", "neighborhood", "close to", "near"],
        "size": ["size", "square feet", "bedrooms", "bathrooms", "rooms"],
        "condition": ["condition", "renovated", "new", "old", "updated"],
        "timeline": ["when", "timeline", "timeframe", "schedule"],
    },
    "objections": {
        "price_objection": ["too expensive", "over budget", "cant afford"],
        "timing_objection": ["not ready", "too soon", "need time"],
        "quality_objection": ["not what im looking for", "not suitable"],
        "process_objection": ["complicated", "too much paperwork", "dont understand"],
    },
    "pain_points": {
        "financial": ["budget", "loan", "mortgage", "down payment", "credit"],
        "timing": ["urgent", "deadline", "need soon", "running out of time"],
        "family": ["schools", "family", "children", "growing family"],
        "work": ["commute", "job", "work", "office"],
    },
    "interests": {
        "investment": ["investment", "rental income", "appreciation", "roi"],
        "lifestyle": ["lifestyle", "dream home", "perfect", "love"],
        "practical": ["practical", "functional", "needs", "requirements"],
    },
}

SHORT_ANSWERS = {"yes", "no", "ok", "sure"}


def _matches(text: str, keywords: List[str]) -> List[str]:
    return [kw for kw in keywords if kw in text]


def _fields(responses: List[ExtractedResponse]) -> Dict[str, str]:
    return {r.field_name: r.answer_value for r in responses}


class CallAnalyzer:
    def analyze_call(self, transcript: str, responses: List[ExtractedResponse], duration_seconds: int) -> CallAnalysisResult:
        transcript = transcript or ""
        lead_score = self.calculate_lead_score(transcript, responses, duration_seconds)
        sentiment = self.analyze_sentiment(transcript)
        intent = self.analyze_intent(transcript)
        topics = self.extract_topics(transcript)
        engagement = self.analyze_engagement(responses, duration_seconds)
        status = self.qualification_status(lead_score, sentiment, intent)

        result = CallAnalysisResult(
            lead_score=lead_score,
            qualification_status=status,
            lead_quality=self.lead_quality(lead_score, sentiment.score, intent.confidence),
            sentiment=sentiment,
            intent=intent,
            topics=topics,
            engagement=engagement,
            summary=self.summarize(responses, duration_seconds),
            next_steps=self.next_steps(status, topics),
            confidence=self.overall_confidence(sentiment, intent, engagement),
        )
        logger.info(f"Call analysis complete: score {lead_score}, status {status}")
        return result

    # Lead score

    def calculate_lead_score(self, transcript: str, responses: List[ExtractedResponse], duration_seconds: int) -> int:
        factors: List[Tuple[int, int]] = [
            (self.score_contact_info(responses), CONTACT_WEIGHT),
            (self.score_intent(transcript), INTENT_WEIGHT),
            (self.score_engagement(responses, duration_seconds), ENGAGEMENT_WEIGHT),
            (self.score_qualification(responses), QUALIFICATION_WEIGHT),
            (self.score_urgency(transcript), URGENCY_WEIGHT),
        ]
        total_weight = sum(weight for _, weight in factors)
        score = round(sum(score * weight for score, weight in factors) / total_weight)
        return min(100, max(0, score))

    def score_contact_info(self, responses: List[ExtractedResponse]) -> int:
        provided = {r.field_name for r in responses if r.answer_value and r.answer_value.strip()}
        score = 0
        if provided & set(NAME_FIELDS):
            score += 40
        if "phone_number" in provided:
            score += 35
        if "email" in provided:
            score += 25
        return score

    def score_intent(self, transcript: str) -> int:
        text = transcript.lower()
        score = 20
        if _matches(text, BUYING_KEYWORDS):
            score += 30
        if _matches(text, SELLING_KEYWORDS):
            score += 30
        if _matches(text, URGENCY_KEYWORDS):
            score += 20
        if _matches(text, HESITATION_KEYWORDS):
            score -= 20
        return max(0, score)

    def score_engagement(self, responses: List[ExtractedResponse], duration_seconds: int) -> int:
        score = 0
        if duration_seconds >= 300:
            score += 30
        elif duration_seconds >= 120:
            score += 20
        elif duration_seconds >= 60:
            score += 10

        count = len(responses)
        if count >= 5:
            score += 25
        elif count >= 3:
            score += 15
        elif count >= 1:
            score += 10

        detailed = [
            r for r in responses
            if len(r.answer_value) > 2 and r.answer_value.lower() not in SHORT_ANSWERS
        ]
        if len(detailed) >= 3:
            score += 20
        elif detailed:
            score += 10
        return score

    def score_qualification(self, responses: List[ExtractedResponse]) -> int:
        fields = _fields(responses)
        score = 30
        if fields.get("budget") or fields.get("budget_min") or fields.get("budget_max"):
            score += 25
        timeline = (fields.get("timeline") or "").lower()
        if timeline:
            if any(t in timeline for t in ("immediately", "asap", "this month")):
                score += 20
            elif any(t in timeline for t in ("few months", "next year")):
                score += 10
        if fields.get("property_type"):
            score += 15
        if fields.get("location") or fields.get("preferred_location"):
            score += 10
        return score

    def score_urgency(self, transcript: str) -> int:
        text = transcript.lower()
        score = 20
        if _matches(text, HIGH_URGENCY):
            score += 50
        elif _matches(text, MEDIUM_URGENCY):
            score += 25
        elif _matches(text, LOW_URGENCY):
            score -= 10
        return max(0, score)

    # Conversation analysis

    def analyze_sentiment(self, transcript: str) -> Sentiment:
        text = transcript.lower()
        positive = len(_matches(text, POSITIVE_KEYWORDS))
        negative = len(_matches(text, NEGATIVE_KEYWORDS))
        neutral = len(_matches(text, NEUTRAL_KEYWORDS))

        if positive > negative:
            return Sentiment(
                score=min(1.0, round(0.3 + positive * 0.2, 2)),
                label="positive",
                emotional_tone="enthusiastic" if positive > 2 else "interested",
            )
        if negative > positive:
            return Sentiment(
                score=max(-1.0, round(-0.3 - negative * 0.2, 2)),
                label="negative",
                emotional_tone="frustrated" if negative > 2 else "skeptical",
            )
        return Sentiment(score=0.0, label="neutral", emotional_tone="cautious" if neutral else "neutral")

    def analyze_intent(self, transcript: str) -> Intent:
        text = transcript.lower()
        scores = {intent: len(_matches(text, keywords)) for intent, keywords in INTENT_KEYWORDS.items()}
        primary, best = "information", 0
        for intent, score in scores.items():
            if score > best:
                primary, best = intent, score
        secondary = [intent for intent, score in scores.items() if intent != primary and score > 0]
        return Intent(primary=primary, secondary=secondary, confidence=min(1.0, round(best * 0.3, 2)))

    def extract_topics(self, transcript: str) -> Topics:
        text = transcript.lower()
        found = {category: [] for category in TOPIC_KEYWORDS}
        for category, topics in TOPIC_KEYWORDS.items():
            for topic, keywords in topics.items():
                if any(kw in text for kw in keywords):
                    found[category].append(topic)
        return Topics(**found)

    def analyze_engagement(self, responses: List[ExtractedResponse], duration_seconds: int) -> Engagement:
        score = 50 + min(30, len(responses) * 5)
        if duration_seconds > 300:
            score += 20
        elif duration_seconds > 120:
            score += 10
        return Engagement(
            score=min(100, score),
            talk_time_percentage=50,
            questions_answered=len(responses),
            total_questions=len(responses),
        )

    # Outcome

    def qualification_status(self, lead_score: int, sentiment: Sentiment, intent: Intent) -> str:
        if lead_score >= 80 and sentiment.score > 0 and intent.confidence > 0.7:
            return "hot_lead"
        if lead_score >= 60 and sentiment.score >= 0:
            return "qualified"
        if lead_score >= 40:
            return "needs_followup"
        return "unqualified"

    def lead_quality(self, lead_score: int, sentiment_score: float, intent_confidence: float) -> str:
        overall = (lead_score + sentiment_score * 50 + intent_confidence * 100) / 3
        if overall >= 75:
            return "hot"
        if overall >= 50:
            return "warm"
        if overall >= 25:
            return "cold"
        return "unqualified"

    def summarize(self, responses: List[ExtractedResponse], duration_seconds: int) -> str:
        summary = f"{round(duration_seconds / 60)} minute call"
        if not responses:
            return summary + "."
        summary += f" with {len(responses)} structured responses collected."
        contact = [r.field_name for r in responses if r.field_name in ("full_name", "phone_number", "email")]
        if contact:
            summary += f" Contact information: {', '.join(contact)}."
        preferences = [
            f"{r.field_name}: {r.answer_value}"
            for r in responses
            if r.field_name in ("property_type", "budget", "location", "timeline")
        ]
        if preferences:
            summary += f" Property preferences: {', '.join(preferences)}."
        return summary

    def next_steps(self, status: str, topics: Topics) -> str:
        if status == "hot_lead":
            steps = [
                "PRIORITY: Contact within 1 hour",
                "Schedule property viewing/consultation",
                "Send personalized property recommendations",
            ]
        elif status == "qualified":
            steps = ["Follow up within 24 hours", "Send detailed information packet"]
            if topics.objections:
                steps.append(f"Address concerns: {', '.join(topics.objections)}")
        elif status == "needs_followup":
            steps = [
                "Schedule follow-up call in 1 week",
                "Send educational materials",
                "Add to nurture campaign",
            ]
        else:
            steps = ["Add to long-term nurture list", "Monitor for future engagement"]
        return "\n".join(steps)

    def overall_confidence(self, sentiment: Sentiment, intent: Intent, engagement: Engagement) -> float:
        # Engagement is on a 0-100 scale; bring it to 0-1 with the others
        values = [v for v in (abs(sentiment.score), intent.confidence, engagement.score / 100) if v > 0]
        if not values:
            return 0.5
        return round(min(1.0, sum(values) / len(values)), 2)

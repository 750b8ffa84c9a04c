"""
AI Interviewer Prompt Templates

Contains:
- Scripted lines for the intro and background phases
- Follow-up decision prompt
- Question list generation prompt

Everything the interviewer says is read aloud by speech synthesis, so
generated text must stay free of markup and special characters.
"""

from voiceprep.models.question import QuestionRequest

NO_FOLLOWUP = "NONE"


class InterviewerPrompts:
    """
    Prompt templates for the AI interviewer.

    Key principles:
    - Professional but personable tone
    - One short question at a time
    - Never reveals answers
    """

    SYSTEM_CONTEXT = """You are an experienced interviewer at a top tech company.

Your role:
- Conduct a professional spoken interview
- Never reveal answers or correct the candidate
- Speak concisely like a real interviewer
- Maintain a neutral, professional tone

Your words are read aloud by a speech synthesizer, so never use markdown,
lists, emojis or special characters.
"""

    WELCOME = (
        "Hello {name}! I'll be conducting your interview today. "
        "To start, please briefly introduce yourself."
    )

    BACKGROUND = (
        "Thank you. Before we get into the main questions, could you walk me "
        "through your background and the experience most relevant to this role?"
    )

    def opening_line(self, candidate_name: str) -> str:
        """Session-opening turn: welcome plus the self-introduction prompt."""
        name = candidate_name.strip() or "there"
        return self.WELCOME.format(name=name)

    def background_line(self) -> str:
        return self.BACKGROUND

    def followup_prompt(self, question: str, answer: str, context: str) -> str:
        """Ask for at most one targeted follow-up, or the NONE marker."""
        return f"""{self.SYSTEM_CONTEXT}
Question: {question}
Candidate response: {answer}
Conversation context so far:
{context or "(none)"}

If a targeted follow-up question would clarify gaps, ask ONE concise follow-up.
Otherwise, return exactly the string: {NO_FOLLOWUP}.

Rules:
- Keep the follow-up under 20 words.
- Do not include commentary, only the question text.
"""

    def question_generation_prompt(self, request: QuestionRequest) -> str:
        """Prompt for the full question list of an interview."""
        techstack = ", ".join(request.techstack) or "not specified"
        company = f"\nThe company is: {request.company}." if request.company else ""
        return f"""Prepare questions for a job interview.
The job role is {request.role}.
The job experience level is {request.level or "not specified"}.
The tech stack used in the job is: {techstack}.{company}
The focus between behavioural and technical questions should lean towards: {request.type.value}.
The amount of questions required is: {request.amount}.

Constraints:
- Questions must be UNIQUE and non-repetitive.
- Avoid near-duplicates by varying focus and phrasing.
- Mix foundational and scenario-based questions.

Return only the questions, without any additional text, code fences, or comments.
The questions will be read by speech synthesis, so avoid special characters.
Return the questions formatted like this:
["Question 1", "Question 2", "Question 3"]
"""

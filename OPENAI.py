import re
import json

import openai
from loguru import logger
from openai import OpenAI, AzureOpenAI

from errors import AIServiceError, AIRateLimitError, AIAuthenticationError, looks_like_rate_limit
from models import AnalysisResult, ChecklistItem, CHECKLIST_ITEMS, COMPLIANCE_VALUES

SPREADSHEET_EXTENSIONS = ('.xlsx', '.xls')

DEFAULT_ANALYSIS_INSTRUCTIONS = "Provide a comprehensive analysis of the file content, structure, and quality."


def _instruction_context(instruction):
    if instruction is None:
        return ""

    sections = [f"INSTRUCTION FILE: {instruction.file_name}"]
    if instruction.remote_url:
        sections.append(f"The instruction file is also available at: {instruction.remote_url}")
    if instruction.content and not instruction.is_binary:
        sections.append(f"INSTRUCTION CONTENT:\n{instruction.content}")
    if instruction.custom_prompt:
        sections.append(f"CUSTOM ANALYSIS INSTRUCTIONS: {instruction.custom_prompt}")
    if instruction.input_data:
        sections.append("ADDITIONAL INPUT DATA:\n" + "\n".join(f"{k}: {v}" for k, v in instruction.input_data.items()))
    return "\n\n".join(sections)


def get_file_analysis_prompt(file_url, file_name, instruction=None):
    context = _instruction_context(instruction)
    if context:
        steps = """
    1. First review the instruction material to understand the analysis requirements
    2. Then analyze the main file according to those instructions
    3. Provide detailed feedback based on the specified criteria
    4. Format your response in a clear, structured manner (markdown)"""
    else:
        context = f"Instructions for analysis:\n{DEFAULT_ANALYSIS_INSTRUCTIONS}"
        steps = """
    1. Identify the file type and format
    2. If it's an Excel file, go through ALL tabs
    3. Analyze the data structure, content, and quality
    4. Identify any issues, inconsistencies, or areas for improvement
    5. Provide specific feedback and recommendations
    6. Format your response in a clear, structured manner (markdown)"""

    PROMPT_TEMPLATE = f"""
Please analyze the file "{file_name}" available at this URL: {file_url}

{context}

Please:{steps}

If you cannot access the file directly, say so explicitly and explain what you would need to complete the analysis.
    """
    return PROMPT_TEMPLATE


def get_instruction_feedback_prompt(record):
    file_name = record.file_name or "unknown"
    is_excel = file_name.lower().endswith(SPREADSHEET_EXTENSIONS)
    is_spreadsheet = is_excel or "BDM_PMPA.xlsx" in record.content or "PMP-A" in record.content
    instruction_type = "PMP-A (Project Management Professional - Assessment)" if record.is_pmpa else "general instruction"

    custom = f"CUSTOM ANALYSIS INSTRUCTIONS: {record.custom_prompt}" if record.custom_prompt else ""
    input_data = ""
    if record.input_data:
        input_data = "ADDITIONAL INPUT DATA:\n" + "\n".join(f"{k}: {v}" for k, v in record.input_data.items())

    spreadsheet_block = """
SPECIAL INSTRUCTIONS FOR SPREADSHEET ANALYSIS:
Since this appears to involve Excel/spreadsheet data, provide specific recommendations for:
- Data validation techniques for spreadsheet columns
- Excel-specific validation tools and formulas
- How to handle multi-tab/sheet analysis
- Recommendations for data quality checks in spreadsheet format
""" if is_spreadsheet else ""

    standards_title = "PMP-A Standards Compliance" if record.is_pmpa else "Best Practices Alignment"
    standards_line = ("- Alignment with PMP-A assessment criteria and standards" if record.is_pmpa
                      else "- Adherence to industry best practices for instruction writing")

    if is_spreadsheet:
        data_quality = """- Specific validation rules for Excel columns and data types
   - Cross-field validation strategies for related data
   - Automated validation approaches using Excel features
   - Data profiling and quality assessment techniques"""
    else:
        data_quality = "- General data quality considerations and validation approaches"

    PROMPT_TEMPLATE = f"""You are an expert data analyst and project management consultant reviewing a {instruction_type} instruction file.

FILE INFORMATION:
- File Name: {file_name}
- Type: {'Excel Spreadsheet' if is_excel else 'Text Document'}
- Contains PMP-A Data: {'Yes' if record.is_pmpa else 'No'}

INSTRUCTION CONTENT:
{record.content}

{custom}

{input_data}
{spreadsheet_block}
Please provide comprehensive feedback covering:

1. **Content Analysis**:
   - Clarity and completeness of the instructions
   - Specific gaps or ambiguities identified
   {'- Spreadsheet-specific data validation recommendations' if is_spreadsheet else ''}

2. **Structure and Organization**:
   - How well-organized and logical is the content?
   - Suggested improvements for better flow
   {'- Recommendations for multi-sheet analysis approach' if is_excel else ''}

3. **{standards_title}**:
   {standards_line}
   - Areas where standards could be better addressed

4. **Actionability and Implementation**:
   - How actionable and specific are the instructions?
   - Missing steps or procedures that should be included
   {'- Specific Excel tools and functions that could be utilized' if is_spreadsheet else ''}

5. **Data Quality Recommendations** {'(Excel-Focused)' if is_spreadsheet else ''}:
   {data_quality}

6. **Practical Implementation Steps**:
   - Concrete next steps for implementing these instructions
   - Tools and resources needed
   {'- Excel-specific implementation guidance' if is_spreadsheet else ''}

PROVIDE SPECIFIC, ACTIONABLE RECOMMENDATIONS. Format your response with clear sections and bullet points for easy implementation."""
    return PROMPT_TEMPLATE


def get_checklist_prompt(record):
    items = "\n".join(f"{i}. {item}" for i, item in enumerate(CHECKLIST_ITEMS, start=1))
    custom = f"CUSTOM ANALYSIS INSTRUCTIONS: {record.custom_prompt}" if record.custom_prompt else ""

    PROMPT_TEMPLATE = f"""You are a PMP-A compliance expert analyzing project documentation. Based on the following instruction content, fill out the PMP-A compliance checklist.

INSTRUCTION CONTENT TO ANALYZE:
{record.content}

{custom}

PMP-A COMPLIANCE CHECKLIST TO FILL:

{items}

FOR EACH CHECKLIST ITEM, PROVIDE:
- Compliance Status: "Yes", "No", "Partial", or "Not Found" (if the document doesn't contain relevant information)
- Remark: Specific details about what was found or missing, with references to the content

RESPOND IN THIS EXACT JSON FORMAT, with one entry for each of the {len(CHECKLIST_ITEMS)} items:
{{
  "checklist": [
    {{
      "srNo": 1,
      "checklist": "{CHECKLIST_ITEMS[0]}",
      "compliance": "Yes/No/Partial/Not Found",
      "remark": "Specific remark about what was found or missing"
    }}
  ]
}}

IMPORTANT:
- Be specific in your remarks - quote exact text from the content when possible
- If information is not found, clearly state "Not mentioned in the provided document"
- For partial compliance, explain what is present and what is missing
- Use professional, clear language suitable for project management documentation"""
    return PROMPT_TEMPLATE


def parse_json_object(text):
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass
    # strip prose or code fences around the object
    match = re.search(r'\{[\s\S]*\}', text or "")
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError:
            pass
    logger.error(f"Load JSON Failed\n{text}")
    return None


def _normalize_compliance(value):
    text = str(value or "").strip().lower()
    for allowed in COMPLIANCE_VALUES:
        if text == allowed.lower():
            return allowed
    return "Not Found"


def fallback_checklist(remark="AI analysis failed to parse response"):
    return [ChecklistItem(sr_no=i, checklist=item, compliance="Not Found", remark=remark)
            for i, item in enumerate(CHECKLIST_ITEMS, start=1)]


def normalize_checklist(raw_items):
    """Map whatever the model returned onto the fixed checklist, in fixed order."""
    by_number = {}
    for item in raw_items or []:
        if not isinstance(item, dict):
            continue
        try:
            by_number[int(item.get("srNo"))] = item
        except (TypeError, ValueError):
            logger.debug(item)

    checklist = []
    for i, description in enumerate(CHECKLIST_ITEMS, start=1):
        item = by_number.get(i)
        if item is None:
            checklist.append(ChecklistItem(i, description, "Not Found", "Not mentioned in the AI response"))
            continue
        checklist.append(ChecklistItem(i, description, _normalize_compliance(item.get("compliance")),
                                       str(item.get("remark") or "")))
    return checklist


def translate_error(error):
    if isinstance(error, openai.RateLimitError) or looks_like_rate_limit(str(error)):
        logger.warning("AI API rate limit exceeded. Please wait before trying again.")
        return AIRateLimitError("AI API rate limit exceeded. Please try again in a few minutes.")
    if isinstance(error, openai.AuthenticationError):
        return AIAuthenticationError("AI API authentication failed. Please check your API key.")
    return AIServiceError(f"AI request failed: {error}")


class AIClient:
    def __init__(self, settings, client=None):
        self.model = settings.openai_model
        self.temperature = settings.openai_temperature

        if client is None:
            if settings.azure_openai_endpoint:
                client = AzureOpenAI(
                    azure_endpoint=settings.azure_openai_endpoint,
                    api_version=settings.azure_openai_api_version,
                    api_key=settings.openai_api_key,
                    max_retries=0,
                )
            else:
                client = OpenAI(api_key=settings.openai_api_key, max_retries=0)
        self.client = client

    def _complete(self, system, prompt, json_mode=False):
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt}
                ],
                temperature=self.temperature,
                **kwargs
            )
        except openai.OpenAIError as e:
            raise translate_error(e) from e

        choices = getattr(response, "choices", None)
        if not choices:
            raise AIServiceError("AI returned an empty response")
        content = (choices[0].message.content or "").strip()
        if not content:
            raise AIServiceError("AI returned an empty response")
        return content

    def analyze_file(self, file_url, file_name, instruction=None) -> AnalysisResult:
        prompt = get_file_analysis_prompt(file_url, file_name, instruction)
        feedback = self._complete("You are an expert file reviewer who gives actionable feedback.", prompt)
        logger.info(f"AI analysis of {file_name} completed")
        return AnalysisResult(success=True, feedback=feedback, source="ai")

    def generate_instruction_feedback(self, record) -> str:
        prompt = get_instruction_feedback_prompt(record)
        return self._complete("You are an expert data analyst and project management consultant.", prompt)

    def fill_checklist(self, record):
        prompt = get_checklist_prompt(record)
        raw = self._complete("You are a PMP-A compliance expert.", prompt, json_mode=True)
        parsed = parse_json_object(raw)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("checklist"), list):
            return fallback_checklist()
        return normalize_checklist(parsed["checklist"])

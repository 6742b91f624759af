# local_analyzer.py
"""Network-free file analysis used as the guaranteed floor of the upload pipeline."""
import os
import re
from datetime import datetime, timezone

from loguru import logger

from models import AnalysisResult
from utils.text_extract import DOCUMENT_EXTENSIONS, extract_document_text

TEXT_EXTENSIONS = {
    '.txt', '.md', '.csv', '.json', '.xml', '.js', '.ts', '.html', '.css', '.py', '.java',
    '.cpp', '.c', '.h', '.yaml', '.yml', '.toml', '.ini', '.log',
}

FILE_TYPES = {
    '.xlsx': {
        'type': 'Excel Spreadsheet',
        'description': 'Microsoft Excel spreadsheet file. This is a binary format that typically contains '
                       'structured data in rows and columns across multiple sheets.',
        'recommendations': '- Verify data integrity across all sheets\n- Check for formula errors\n'
                           '- Validate data consistency\n- Consider CSV export for compatibility',
    },
    '.xls': {
        'type': 'Legacy Excel Spreadsheet',
        'description': 'Older Microsoft Excel format. May have compatibility issues with newer software.',
        'recommendations': '- Consider converting to .xlsx format\n- Backup before conversion\n'
                           '- Test with target applications',
    },
    '.csv': {
        'type': 'Comma-Separated Values',
        'description': 'Plain text file with comma-separated data. Widely compatible and easy to process.',
        'recommendations': '- Verify delimiter consistency\n- Check for proper quoting of text fields\n'
                           '- Validate data types in each column',
    },
    '.pdf': {
        'type': 'Portable Document Format',
        'description': 'Fixed-layout document format. Good for sharing formatted documents.',
        'recommendations': '- Ensure text is selectable (not scanned image)\n- Check accessibility features\n'
                           '- Verify font embedding for compatibility',
    },
    '.docx': {
        'type': 'Word Document',
        'description': 'Microsoft Word document in modern XML format.',
        'recommendations': '- Check for track changes and comments\n- Verify formatting consistency\n'
                           '- Consider PDF export for final distribution',
    },
    '.txt': {
        'type': 'Plain Text',
        'description': 'Simple text file without formatting. Universally compatible.',
        'recommendations': '- Check character encoding (UTF-8 recommended)\n'
                           '- Verify line endings for target platform\n'
                           '- Consider structured format if data is complex',
    },
    '.json': {
        'type': 'JSON Data',
        'description': 'JavaScript Object Notation data file. Structured data format.',
        'recommendations': '- Validate JSON syntax\n- Check data structure consistency\n'
                           '- Consider schema validation',
    },
}

SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB']


def file_type_analysis(extension):
    return FILE_TYPES.get(extension, {
        'type': 'Unknown File Type',
        'description': f"File with extension {extension or 'none'} - binary or unsupported format.",
        'recommendations': '- Verify file integrity\n- Check if specialized software is needed\n'
                           '- Consider format conversion if needed',
    })


def format_file_size(size) -> str:
    if size <= 0:
        return '0 Bytes'
    i = 0
    while size >= 1024 and i < len(SIZE_UNITS) - 1:
        size /= 1024
        i += 1
    return f"{round(size, 2):g} {SIZE_UNITS[i]}"


def is_text_file(extension) -> bool:
    return extension in TEXT_EXTENSIONS


def analyze_text_content(content) -> str:
    lines = content.split('\n')
    word_count = len(content.split())

    analysis = (
        "\n### Content Analysis\n"
        f"- **Lines**: {len(lines)}\n"
        f"- **Words**: {word_count}\n"
        f"- **Characters**: {len(content)}\n"
    )

    issues = []
    if '\r\n' in content and re.search(r'(?<!\r)\n', content):
        issues.append('Mixed line endings detected')
    if '\t' in content and '  ' in content:
        issues.append('Mixed indentation (tabs and spaces)')

    if ',' in content and len(lines) > 1:
        analysis += '\n- **Possible CSV data detected**'
    if '{' in content and '}' in content:
        analysis += '\n- **Possible JSON structure detected**'

    if issues:
        analysis += "\n\n### Potential Issues\n" + "\n".join(f"- {issue}" for issue in issues)

    return analysis


def _instruction_section(instruction):
    if instruction is None:
        return 'No specific analysis instructions were provided.'

    parts = [f"Instruction file: {instruction.file_name}"]
    if instruction.remote_url:
        parts.append(f"Instruction file URL provided: {instruction.remote_url}\n"
                     "(Local analysis cannot access remote instruction files - "
                     "upgrade to AI analysis for full instruction support)")
    if instruction.custom_prompt:
        parts.append(f"Custom prompt: {instruction.custom_prompt}")
    return "\n".join(parts)


def _content_section(path, extension):
    if is_text_file(extension):
        try:
            with open(path, encoding='utf-8') as f:
                return analyze_text_content(f.read())
        except (OSError, UnicodeDecodeError):
            return 'Could not read file content for analysis.'

    if extension in DOCUMENT_EXTENSIONS:
        try:
            text = extract_document_text(path, extension)
        except Exception as e:
            logger.warning(f"Text extraction failed for {path}: {e}")
            return 'Could not extract document text for analysis.'
        return analyze_text_content(text)

    return ''


def analyze_file(path, filename, instruction=None) -> AnalysisResult:
    """Build the baseline markdown report from file metadata and simple text statistics.

    Only a failing ``os.stat`` on the already-written temp file can make this raise.
    """
    stats = os.stat(path)
    extension = os.path.splitext(filename)[1].lower()
    type_info = file_type_analysis(extension)
    content_analysis = _content_section(path, extension)

    feedback = f"""## File Analysis Report

### File Information
- **Name**: {filename}
- **Type**: {type_info['type']}
- **Size**: {format_file_size(stats.st_size)}
- **Extension**: {extension or 'none'}

### File Type Analysis
{type_info['description']}

{content_analysis}

### Instructions Provided
{_instruction_section(instruction)}

### Analysis Limitations
This is a basic local analysis. For more detailed AI-powered analysis, configure the AI API or wait for rate limits to reset.

### Recommendations
{type_info['recommendations']}
"""

    return AnalysisResult(
        success=True,
        feedback=feedback,
        file_info={
            'name': filename,
            'size': stats.st_size,
            'extension': extension,
            'lastModified': datetime.fromtimestamp(stats.st_mtime, timezone.utc).isoformat(),
        },
        source='local',
    )

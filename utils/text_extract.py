import docx
from pdfminer.high_level import extract_text

DOCUMENT_EXTENSIONS = ('.pdf', '.docx')


def extract_pdf_text(path) -> str:
    """
    Extracts text from a PDF on disk using pdfminer.six.

    Args:
        path: Path to the PDF file

    Returns:
        Extracted text as a string.
    """
    return extract_text(path)


def extract_docx_text(path) -> str:
    document = docx.Document(path)
    return '\n'.join(paragraph.text for paragraph in document.paragraphs)


def extract_document_text(path, extension) -> str:
    if extension == '.pdf':
        return extract_pdf_text(path)
    if extension == '.docx':
        return extract_docx_text(path)
    raise ValueError(f"No text extractor for {extension}")

import pdfplumber


def extract_text_from_pdf(path: str) -> str:
    """
    Open a PDF file at `path` and return all text concatenated,
    one page per paragraph.
    """
    text_pages = []
    with pdfplumber.open(path) as pdf:
        for page in pdf.pages:
            text = page.extract_text() or ""
            if text.strip():
                text_pages.append(text.strip())
    return "\n\n".join(text_pages)

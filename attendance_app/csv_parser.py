"""CSV parsing for attendance sheet exports."""

from typing import List


def parse_line(line: str) -> List[str]:
    """
    Split one CSV line into fields.

    A double quote toggles quoted mode; inside quotes a comma is literal and
    a doubled quote collapses to a single quote character.

    Args:
        line: A single physical line without the line terminator

    Returns:
        List of untrimmed field values
    """
    fields = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and line[i + 1:i + 2] == '"':
                current.append('"')
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == ',' and not in_quotes:
            fields.append(''.join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append(''.join(current))
    return fields


def parse_csv(text: str) -> List[List[str]]:
    """
    Parse raw CSV text into rows of string fields.

    Carriage returns are dropped and the text is split on line feeds. A blank
    line still yields a row (with no fields) so row indexes stay aligned with
    source line numbers. Empty input yields a single empty row.

    Args:
        text: Raw sheet export

    Returns:
        List of rows; row 0 is the header
    """
    rows: List[List[str]] = []
    for raw_line in text.replace('\r', '').split('\n'):
        line = raw_line.strip()
        if line == '':
            rows.append([])
            continue
        rows.append(parse_line(line))
    return rows

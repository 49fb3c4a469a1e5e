"""CSV and PDF exports for the reports and audit screens."""
import csv
import io
from collections import Counter

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .services.analytics import funnel, performance_stats

REPORT_TYPES = ('inquiries', 'activity', 'performance')
REPORT_TITLES = {
    'inquiries': 'Inquiries Report',
    'activity': 'Activity Report',
    'performance': 'Performance Report',
}
INQUIRY_CSV_HEADER = (
    'ID',
    'Full Name',
    'Company',
    'Email',
    'Phone',
    'Category',
    'Product',
    'Volume',
    'Status',
    'Source',
    'Created At',
)
ACTIVITY_CSV_HEADER = ('Timestamp', 'User', 'Action', 'Resource Type', 'Resource ID', 'Resource Name')
AUDIT_CSV_HEADER = ACTIVITY_CSV_HEADER + ('User Email', 'IP Address')


def report_filename(report_type, extension, today):
    return f"{report_type}-report-{today.strftime('%Y-%m-%d')}.{extension}"


def format_datetime(value):
    return value.strftime('%Y-%m-%d %H:%M') if value else ''


def _cell(value):
    # Keep every record on one physical line.
    text = '' if value is None else str(value)
    return ' '.join(text.splitlines())


def _write_csv(header, rows):
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(header)
    for row in rows:
        writer.writerow([_cell(value) for value in row])
    return buffer.getvalue()


def inquiries_csv(inquiries):
    return _write_csv(INQUIRY_CSV_HEADER, (
        (
            item.id,
            item.full_name,
            item.company_name,
            item.email,
            item.phone,
            item.category_label,
            item.product_label,
            item.volume_display,
            item.status,
            item.source or 'direct',
            format_datetime(item.created_at),
        )
        for item in inquiries
    ))


def _actor_name(log):
    return log.actor.full_name if log.actor else (log.user_email or 'Unknown')


def activity_csv(audit_rows):
    return _write_csv(ACTIVITY_CSV_HEADER, (
        (
            format_datetime(log.timestamp),
            _actor_name(log),
            log.action,
            log.resource_type or '',
            log.resource_id or '',
            log.resource_name or '',
        )
        for log in audit_rows
    ))


def audit_logs_csv(audit_rows):
    return _write_csv(AUDIT_CSV_HEADER, (
        (
            format_datetime(log.timestamp),
            _actor_name(log),
            log.action,
            log.resource_type or '',
            log.resource_id or '',
            log.resource_name or '',
            log.user_email or '',
            log.ip_address or '',
        )
        for log in audit_rows
    ))


def performance_csv(inquiries, generated_at):
    stats = performance_stats(inquiries)
    return _write_csv(('Metric', 'Value'), [
        ('Total Inquiries', stats['total']),
        ('Pending', stats['pending']),
        ('Contacted', stats['contacted']),
        ('Qualified', stats['qualified']),
        ('Negotiating', stats['negotiating']),
        ('Closed Won', stats['closed_won']),
        ('Closed Lost', stats['closed_lost']),
        ('Conversion Rate', f"{stats['conversion_rate']:.2f}%"),
        ('Report Generated', format_datetime(generated_at)),
    ])


def _numbered_canvas(footer_label):
    class NumberedCanvas(canvas.Canvas):
        """Defers page output until the total page count is known."""

        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self._saved_page_states = []

        def showPage(self):
            self._saved_page_states.append(dict(self.__dict__))
            self._startPage()

        def save(self):
            total = len(self._saved_page_states)
            for state in self._saved_page_states:
                self.__dict__.update(state)
                self._draw_footer(total)
                super().showPage()
            super().save()

        def _draw_footer(self, total):
            width, _ = self._pagesize
            self.saveState()
            self.setFont('Helvetica', 8)
            self.setFillColor(colors.grey)
            self.drawCentredString(width / 2.0, 12 * mm, f'Page {self._pageNumber} of {total} | {footer_label}')
            self.restoreState()

    return NumberedCanvas


def _inquiries_section(inquiries, styles, max_rows):
    elements = [Paragraph('Summary', styles['Heading3'])]
    total = len(inquiries)
    counts = Counter(item.status for item in inquiries)
    for label, value in (
        ('Total Inquiries', total),
        ('Pending', counts.get('pending', 0)),
        ('Closed Won', counts.get('closed_won', 0)),
        ('Closed Lost', counts.get('closed_lost', 0)),
    ):
        elements.append(Paragraph(f'{label}: {value}', styles['BodyText']))
    elements.append(Spacer(1, 6 * mm))

    rows = [['Contact', 'Company', 'Product', 'Status']]
    for item in inquiries[:max_rows]:
        rows.append([
            item.full_name[:20],
            item.company_name[:20],
            item.product_label[:15],
            item.status.replace('_', ' '),
        ])
    table = Table(rows, repeatRows=1, hAlign='LEFT', colWidths=[45 * mm, 45 * mm, 40 * mm, 30 * mm])
    table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('LINEBELOW', (0, 0), (-1, 0), 0.5, colors.black),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
    ]))
    elements.append(table)
    if total > max_rows:
        elements.append(Spacer(1, 3 * mm))
        elements.append(Paragraph(f'... and {total - max_rows} more inquiries', styles['Italic']))
    return elements


def _activity_section(audit_rows, styles):
    elements = [
        Paragraph('Activity Summary', styles['Heading3']),
        Paragraph(f'Total Activities: {len(audit_rows)}', styles['BodyText']),
        Spacer(1, 4 * mm),
        Paragraph('Activities by Type', styles['Heading4']),
    ]
    for action, count in Counter(log.action for log in audit_rows).most_common():
        elements.append(Paragraph(f"&bull; {action.replace('_', ' ')}: {count}", styles['BodyText']))
    return elements


def _performance_section(inquiries, styles):
    stats = performance_stats(inquiries)
    metrics = [
        ['Total Inquiries', str(stats['total'])],
        ['Pending', str(stats['pending'])],
        ['Contacted', str(stats['contacted'])],
        ['Qualified', str(stats['qualified'])],
        ['Closed Won', str(stats['closed_won'])],
        ['Closed Lost', str(stats['closed_lost'])],
        ['Conversion Rate', f"{stats['conversion_rate']:.2f}%"],
    ]
    metrics_table = Table(metrics, hAlign='LEFT', colWidths=[60 * mm, 40 * mm])
    metrics_table.setStyle(TableStyle([('FONTSIZE', (0, 0), (-1, -1), 10)]))

    funnel_rows = [
        [f"{stage['stage']}: {stage['value']} ({stage['pct']:.1f}%)", '']
        for stage in funnel(stats)
    ]
    funnel_table = Table(funnel_rows, hAlign='LEFT', colWidths=[60 * mm, 80 * mm])
    funnel_style = [('FONTSIZE', (0, 0), (-1, -1), 10)]
    for index, stage in enumerate(funnel(stats)):
        # A bar proportional to the stage share, drawn as a filled cell segment.
        if stage['pct'] > 0:
            funnel_style.append(('BACKGROUND', (1, index), (1, index), colors.Color(0.23, 0.51, 0.96, alpha=stage['pct'] / 100)))
    funnel_table.setStyle(TableStyle(funnel_style))
    return [
        Paragraph('Performance Metrics', styles['Heading3']),
        metrics_table,
        Spacer(1, 6 * mm),
        Paragraph('Sales Funnel', styles['Heading3']),
        funnel_table,
    ]


def build_pdf_report(report_type, generated_at, company_name, inquiries=(), audit_rows=(), max_rows=30):
    if report_type not in REPORT_TYPES:
        raise ValueError(f'Unknown report type: {report_type}')

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=22 * mm,
        title=REPORT_TITLES[report_type],
        author=company_name,
    )
    styles = getSampleStyleSheet()
    centered_title = styles['Title'].clone('ReportCompany')
    centered_subtitle = styles['Heading2'].clone('ReportTitle', alignment=1)
    centered_meta = styles['Normal'].clone('ReportMeta', alignment=1, textColor=colors.grey)

    elements = [
        Paragraph(company_name, centered_title),
        Paragraph(REPORT_TITLES[report_type], centered_subtitle),
        Paragraph(f'Generated: {format_datetime(generated_at)} UTC', centered_meta),
        Spacer(1, 8 * mm),
    ]
    inquiries = list(inquiries)
    if report_type == 'inquiries':
        elements.extend(_inquiries_section(inquiries, styles, max_rows))
    elif report_type == 'activity':
        elements.extend(_activity_section(list(audit_rows), styles))
    else:
        elements.extend(_performance_section(inquiries, styles))

    doc.build(elements, canvasmaker=_numbered_canvas(f'{company_name} - Confidential'))
    buffer.seek(0)
    return buffer.getvalue()

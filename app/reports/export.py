"""
app/reports/export.py
---------------------
CSV and PDF downloads of a DailyReport.

CSV
───
One row per sale, newest first, UTF-8 with a byte-order mark so Excel
opens the Japanese headers correctly.

PDF
───
The report view is drawn onto a Pillow image at 2× scale and that
raster is placed on a single A4 portrait page with reportlab. The
result is a visual snapshot; the text is not searchable.

Exports only read the report. Any failure while drawing or writing the
PDF surfaces as ReportRenderError and no bytes are returned.
"""
import csv
import io
from datetime import date

from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas


CSV_FIXED_HEADER = ['日時', 'イベント名', '動員種別', '名前', '動員特典', '2回し特典']
CSV_TOTAL_HEADER = '合計金額'

BASE_WIDTH = 800        # px at scale 1, roughly the on-screen report width
RASTER_SCALE = 2

TEXT      = (30, 41, 59)
MUTED     = (100, 116, 139)
RULE      = (226, 232, 240)
HEADER_BG = (241, 245, 249)
ACCENT    = (236, 72, 153)


class ReportRenderError(RuntimeError):
    """The PDF snapshot could not be produced."""


def csv_filename(day: date) -> str:
    return f'物販売上_{day.isoformat()}.csv'


def pdf_filename(day: date) -> str:
    return f'売上日報_{day.isoformat()}.pdf'


def localized_timestamp(record, tz) -> str:
    return record.created_at.astimezone(tz).strftime('%Y/%m/%d %H:%M:%S')


# ═══════════════════════════════════════════════════════════════════
# CSV
# ═══════════════════════════════════════════════════════════════════

def export_csv(report, tz) -> bytes:
    """Build the sales CSV in memory and return it BOM-prefixed UTF-8."""
    catalog = report.settings.catalog

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n')

    writer.writerow(CSV_FIXED_HEADER + [p.name for p in catalog] + [CSV_TOTAL_HEADER])

    for record in report.records:
        writer.writerow([
            localized_timestamp(record, tz),
            report.event_name,
            report.mobilization_label(record),
            record.customer_name,
            record.benefit,
            record.double_dispatch_benefit if record.is_double_dispatch else '',
            *[record.quantity(key) for key in catalog.keys()],
            record.total_amount,
        ])

    return buf.getvalue().encode('utf-8-sig')


# ═══════════════════════════════════════════════════════════════════
# PDF
# ═══════════════════════════════════════════════════════════════════

def _load_font(font_path, size):
    """TrueType font at `size`; Pillow's bundled font when the path is unusable."""
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            pass
    return ImageFont.load_default(size=size)


class _ReportPainter:
    """Lays the report view out top to bottom on a white raster."""

    ROW = 28
    PAD = 32

    def __init__(self, report, tz, font_path, company_name, scale):
        self.report       = report
        self.tz           = tz
        self.company_name = company_name
        self.s            = scale
        self.width        = BASE_WIDTH * scale

        self.title_font = _load_font(font_path, 26 * scale)
        self.big_font   = _load_font(font_path, 22 * scale)
        self.font       = _load_font(font_path, 13 * scale)
        self.small_font = _load_font(font_path, 11 * scale)

    def height(self) -> int:
        rows = len(self.report.product_lines) + max(1, len(self.report.benefit_records))
        return (360 + rows * self.ROW + 2 * 60) * self.s

    def paint(self) -> Image.Image:
        image = Image.new('RGB', (self.width, self.height()), color='white')
        self.draw = ImageDraw.Draw(image)
        y = self.PAD * self.s

        y = self._header(y)
        y = self._summary(y)
        y = self._product_table(y)
        y = self._benefit_table(y)
        self._footer(y)

        return image

    # ── sections ──────────────────────────────────────────────────

    def _header(self, y):
        s, left = self.s, self.PAD * self.s
        self.draw.text((left, y), '売上日報', fill=TEXT, font=self.title_font)
        meta = f'{self.report.day.strftime("%Y年%m月%d日")}  {self.report.event_name or "イベント名未設定"}'
        self._text_right(meta, y + 8 * s, self.font, MUTED)
        y += 44 * s
        self.draw.line((left, y, self.width - left, y), fill=TEXT, width=2 * s)
        return y + 20 * s

    def _summary(self, y):
        s, left = self.s, self.PAD * self.s
        report = self.report
        half   = (self.width - 2 * left) // 2

        self.draw.text((left, y), '総売上', fill=MUTED, font=self.font)
        self.draw.text((left, y + 20 * s), f'¥{report.total_sales:,}', fill=TEXT, font=self.big_font)

        x = left + half
        self.draw.text((x, y), '動員数', fill=MUTED, font=self.font)
        self.draw.text((x, y + 20 * s), f'{report.mobilization_count}人', fill=ACCENT, font=self.big_font)
        self.draw.text(
            (x + 110 * s, y + 28 * s), f'(2回し: {report.double_dispatch_count}人)',
            fill=MUTED, font=self.font,
        )
        if report.settings.benefits.mode == 'multi':
            benefits = report.settings.benefits
            self.draw.text(
                (x, y + 54 * s),
                f'{benefits.area1.label}: {report.area_count("area1")}人 / '
                f'{benefits.area2.label}: {report.area_count("area2")}人',
                fill=MUTED, font=self.small_font,
            )
        return y + 90 * s

    def _product_table(self, y):
        columns = [('商品名', 0.0, 'left'), ('単価', 0.55, 'right'),
                   ('数量', 0.75, 'right'), ('小計', 1.0, 'right')]
        rows = [
            [line.name, f'¥{line.price:,}', str(line.quantity), f'¥{line.amount:,}']
            for line in self.report.product_lines
        ]
        return self._table('商品別売上', columns, rows, y)

    def _benefit_table(self, y):
        columns = [('時刻', 0.0, 'left'), ('名前', 0.15, 'left'),
                   ('種別', 0.45, 'left'), ('特典内容', 0.65, 'left')]
        rows = []
        for r in self.report.benefit_records:
            kind = self.report.classification(r)
            if r.is_double_dispatch:
                kind += ' / 2回し'
            rows.append([
                r.created_at.astimezone(self.tz).strftime('%H:%M'),
                r.customer_name,
                kind,
                r.benefit,
            ])
        if not rows:
            rows = [['', '動員・特典の記録はありません', '', '']]
        return self._table('動員・特典リスト', columns, rows, y)

    def _footer(self, y):
        text = f'{self.company_name} 社内業務効率化ツール'.strip()
        self._text_center(text, y + 16 * self.s, self.small_font, MUTED)

    # ── primitives ────────────────────────────────────────────────

    def _table(self, title, columns, rows, y):
        s, left = self.s, self.PAD * self.s
        inner   = self.width - 2 * left
        row_h   = self.ROW * s

        self.draw.text((left, y), title, fill=TEXT, font=self.font)
        y += 24 * s

        self.draw.rectangle((left, y, self.width - left, y + row_h), fill=HEADER_BG)
        self._row([c[0] for c in columns], columns, left, inner, y, MUTED)
        y += row_h

        for cells in rows:
            self._row(cells, columns, left, inner, y, TEXT)
            y += row_h
            self.draw.line((left, y, self.width - left, y), fill=RULE, width=s)

        return y + 24 * s

    def _row(self, cells, columns, left, inner, y, colour):
        pad = 8 * self.s
        for text, (_, pos, align) in zip(cells, columns):
            x = left + int(inner * pos)
            if align == 'right':
                x -= int(self.draw.textlength(text, font=self.font)) + pad
            else:
                x += pad
            self.draw.text((x, y + 6 * self.s), text, fill=colour, font=self.font)

    def _text_right(self, text, y, font, colour):
        x = self.width - self.PAD * self.s - int(self.draw.textlength(text, font=font))
        self.draw.text((x, y), text, fill=colour, font=font)

    def _text_center(self, text, y, font, colour):
        x = (self.width - int(self.draw.textlength(text, font=font))) // 2
        self.draw.text((x, y), text, fill=colour, font=font)


def render_report_image(report, tz, font_path=None, company_name='',
                        scale: int = RASTER_SCALE) -> Image.Image:
    """Rasterise the report view."""
    return _ReportPainter(report, tz, font_path, company_name, scale).paint()


def image_to_pdf(image: Image.Image) -> bytes:
    """
    Place `image` at the top of one A4 portrait page, scaled to the page
    width. A raster taller than the page is shrunk to fit its height.
    """
    page_w, page_h = A4
    width  = page_w
    height = image.height * width / image.width
    if height > page_h:
        width  = width * page_h / height
        height = page_h

    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    pdf.drawImage(ImageReader(image), 0, page_h - height, width=width, height=height)
    pdf.showPage()
    pdf.save()
    return buf.getvalue()


def export_pdf(report, tz, font_path=None, company_name='') -> bytes:
    try:
        image = render_report_image(report, tz, font_path, company_name)
        return image_to_pdf(image)
    except (OSError, ValueError, TypeError) as exc:
        raise ReportRenderError(f'PDF render failed: {exc}') from exc

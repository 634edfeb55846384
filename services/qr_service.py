import logging
import os
from io import BytesIO

import qrcode
from PIL import Image, ImageDraw, ImageFont

import config

logger = logging.getLogger(__name__)

FONT_PATH = os.path.join(config.STATIC_ROOT, "fonts", "caption.ttf")


def build_play_url(base_url: str, signage_id: str, token: str) -> str:
    """폰으로 열릴 설문 주소: {base}/play/?id=...&token=..."""
    base_url = base_url.rstrip("/")
    return f"{base_url}{config.BASE_PATH}/play/?id={signage_id}&token={token}"


def _load_font(size: int):
    try:
        if os.path.exists(FONT_PATH):
            return ImageFont.truetype(FONT_PATH, size)
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        logger.debug("Caption font not found, falling back to default font")
        return ImageFont.load_default()


def generate_signage_qr(target_url: str, caption: str = "") -> BytesIO:
    """
    target_url 을 담은 QR 코드 PNG 를 만들어 메모리 버퍼로 돌려준다.
    caption 이 있으면 QR 아래에 가운데 정렬로 적어 준다 (장소 이름 등).
    """
    # 1. QR 코드 객체 생성
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=10,
        border=2,
    )
    qr.add_data(target_url)
    qr.make(fit=True)

    # 2. 기본 QR 이미지 생성 (RGB 모드로 변환해야 텍스트 작업 가능)
    qr_img = qr.make_image(fill_color="black", back_color="white").convert("RGB")

    if caption:
        # 3. 캔버스 확장 (QR 높이 + 텍스트 공간 60px)
        font = _load_font(24)
        qr_w, qr_h = qr_img.size
        padding_bottom = 60

        canvas = Image.new("RGB", (qr_w, qr_h + padding_bottom), "white")
        canvas.paste(qr_img, (0, 0))

        draw = ImageDraw.Draw(canvas)
        bbox = draw.textbbox((0, 0), caption, font=font)
        text_w = bbox[2] - bbox[0]
        text_h = bbox[3] - bbox[1]
        x = (qr_w - text_w) / 2
        y = qr_h + (padding_bottom - text_h) / 2 - 5
        draw.text((x, y), caption, fill="black", font=font)
        qr_img = canvas

    # 4. 파일 대신 메모리에 저장 (토큰이 계속 바뀌므로)
    output = BytesIO()
    qr_img.save(output, format="PNG")
    output.seek(0)
    return output

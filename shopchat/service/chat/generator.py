import json
import logging
from typing import Optional, Sequence

from shopchat.client.llm.chatgpt import CompletionClient, CompletionOptions
from shopchat.model.conversation.conversation import Turn
from shopchat.model.product.product import ProductContext

logger = logging.getLogger(__name__)

GENERATION_FALLBACK = "Xin lỗi, tôi đang gặp sự cố kỹ thuật. Vui lòng thử lại sau ít phút."
NO_PRODUCTS_LINE = "HIỆN TẠI KHÔNG CÓ SẢN PHẨM LIÊN QUAN TRONG KHO."

GENERATION_OPTIONS = CompletionOptions(temperature=0.7, max_tokens=600)


def format_price(price: float) -> str:
    """1234567 -> '1.234.567 VND'"""
    return f"{int(round(price or 0)):,}".replace(",", ".") + " VND"


def describe_product(index: int, product: ProductContext) -> str:
    lines = [
        f"SẢN PHẨM {index}:",
        f"- ID: {product.id}",
        f"- Tên: {product.name}",
        f"- Hãng: {product.brand or 'không rõ'}",
        f"- Giá: {format_price(product.price)}",
        f"- Mô tả: {product.description or 'chưa có mô tả'}",
        f"- Tồn kho: {product.in_stock} sản phẩm",
    ]
    if product.specs:
        lines.append(f"- Thông số: {json.dumps(product.specs, ensure_ascii=False, indent=2)}")
    return "\n".join(lines)


def build_system_prompt(products: Sequence[ProductContext], history: Optional[Sequence[Turn]]) -> str:
    if products:
        context_text = "\n\n".join(describe_product(i, p) for i, p in enumerate(products, start=1))
    else:
        context_text = NO_PRODUCTS_LINE

    history_text = "\n".join(f"{turn.role}: {turn.content}" for turn in history or [])

    sections = [
        "Bạn là Quỳnh Như, nhân viên tư vấn bán hàng của cửa hàng điện thoại.",
        "1. Tư vấn nhiệt tình, thân thiện, tự nhiên.",
        "2. CHỈ dùng dữ liệu sản phẩm bên dưới, không bịa thông tin.",
        "3. Luôn nêu tên sản phẩm, hãng, giá, tồn kho; chỉ đưa thông số khi được hỏi.",
        "4. Nếu thiếu dữ liệu thì thừa nhận và gợi ý sản phẩm thay thế.",
        f"DANH SÁCH SẢN PHẨM:\n{context_text}",
    ]
    if history_text:
        sections.append(f"LỊCH SỬ CHAT GẦN ĐÂY:\n{history_text}")
    sections.append("Không cần chào lại nếu đã chào trước đó. Trả lời bằng tiếng Việt thân thiện.")
    return "\n".join(sections)


class ResponseGenerator:
    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def generate(
        self,
        history: Optional[Sequence[Turn]],
        user_message: str,
        products: Optional[Sequence[ProductContext]],
    ) -> str:
        try:
            system_prompt = build_system_prompt(products or [], history)
            return await self.completion.complete(system_prompt, history, user_message, GENERATION_OPTIONS)
        except Exception as exc:
            logger.warning("response generation failed, using fallback: %s", exc)
            return GENERATION_FALLBACK

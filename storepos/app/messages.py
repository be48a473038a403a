from typing import Dict, Optional

# Registers are staffed by Chinese- and Spanish-speaking operators; every
# member-facing rejection carries both texts.
LOCALIZED: Dict[str, Dict[str, str]] = {
    "PHONE_MISMATCH": {
        "zh": "二次输入的手机号与当前登录会员不一致。如需更换会员，请先退出当前会员，再用正确手机号登录后重新购买。",
        "es": (
            "El número de teléfono introducido en la segunda verificación no coincide con el miembro "
            "actualmente conectado. Si desea cambiar de cliente, primero cierre la sesión del miembro "
            "actual y vuelva a iniciar sesión con el número correcto antes de realizar la compra."
        ),
    },
    "PAYMENT_METHOD_NOT_ALLOWED": {
        "zh": "购买优惠卡仅支持现金或银行卡支付，请更改支付方式。",
        "es": (
            "La compra de tarjetas promocionales solo admite efectivo o tarjeta bancaria. "
            "Por favor, cambie el método de pago."
        ),
    },
    "NO_ACTIVE_SHIFT": {
        "zh": "当前设备没有已开启的班次，请先开班。",
        "es": "No hay un turno abierto en este dispositivo. Abra un turno antes de vender.",
    },
    "PASS_QTY_LIMIT": {
        "zh": "每笔订单只能购买一张优惠卡。",
        "es": "Solo se puede comprar una tarjeta promocional por pedido.",
    },
    "PASS_PROMO_NOT_ALLOWED": {
        "zh": "优惠卡不参与任何促销活动，请移除促销后重试。",
        "es": "Las tarjetas promocionales no admiten promociones. Elimine la promoción e inténtelo de nuevo.",
    },
    "NOT_A_PASS_PRODUCT": {
        "zh": "该商品不是可售卖的优惠卡。",
        "es": "Este producto no es una tarjeta promocional a la venta.",
    },
}


def localized(code: str) -> Optional[Dict[str, str]]:
    texts = LOCALIZED.get(code)
    return dict(texts) if texts else None

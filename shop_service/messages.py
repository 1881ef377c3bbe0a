"""Text of operator Telegram messages and customer emails."""

from html import escape

from .models import METHOD_CARD, METHOD_ERIP, METHOD_PAYMENT_ACCOUNT, SELF_SHIPPING

PAYMENT_METHOD_NAMES = {
    METHOD_ERIP: "ЕРИП",
    METHOD_CARD: "Карта (AlphaBank)",
    METHOD_PAYMENT_ACCOUNT: "Расчетный счет",
    SELF_SHIPPING: "Самовывоз (наличные/карта)",
}

EMAIL_FOOTER = """
<br><br>
С уважением, команда MPP.Shop<br>
Мы готовы помочь вам по любым вопросам, связанным с оформлением и оплатой заказа.
"""


def _money(value) -> str:
    return f"{float(value or 0):.2f}"


def _product_name(item) -> str:
    if item.product is not None:
        return escape(item.product.title)
    return f"Product #{item.product_id or 'N/A'}"


def format_order_message(order) -> str:
    """New order notice for the operator chat."""
    items = "\n".join(
        f"{index}. {_product_name(item)} (Артикул: {escape(item.product.articul or 'N/A') if item.product else 'N/A'})"
        f" - {item.quantity} шт. × {_money(item.unit_price)} BYN = {_money(item.total_price)} BYN"
        for index, item in enumerate(order.order_items, start=1)
    )

    pricing = [f"<b>Сумма товаров:</b> {_money(order.subtotal)} BYN"]
    if order.shipping_cost:
        pricing.append(f"<b>Доставка:</b> +{_money(order.shipping_cost)} BYN")
    if order.discount_amount:
        pricing.append(f"<b>Скидка:</b> -{_money(order.discount_amount)} BYN")
    pricing.append(f"<b>Итого:</b> {_money(order.total_amount)} BYN")

    address = order.address
    client = ["<b>Информация о клиенте:</b>"]
    for label, value in (
        ("ФИО", address.full_name),
        ("Email", address.email),
        ("Телефон", address.phone),
        ("Город", address.city),
        ("Адрес", address.address),
        ("Почтовый индекс", address.postal_code),
    ):
        if value:
            client.append(f"<b>{label}:</b> {escape(value)}")
    client.append(f"<b>Тип доставки:</b> {'Самовывоз' if address.type == SELF_SHIPPING else 'Доставка'}")
    client.append(f"<b>Тип клиента:</b> {'Физическое лицо' if address.is_individual else 'Юридическое лицо'}")
    if not address.is_individual:
        for label, value in (
            ("Организация", address.organization),
            ("УНП", address.unp),
            ("Расчетный счет", address.payment_account),
            ("Адрес банка", address.bank_address),
        ):
            if value:
                client.append(f"<b>{label}:</b> {escape(value)}")

    lines = [
        "<b>🛒 Новый заказ создан</b>",
        "",
        f"<b>Номер заказа:</b> #{order.order_number}",
        f"<b>Статус:</b> {order.order_status}",
        f"<b>Дата:</b> {order.order_date:%d.%m.%Y %H:%M:%S}",
    ]
    if order.payment_method:
        lines.append(f"<b>Способ оплаты:</b> {PAYMENT_METHOD_NAMES.get(order.payment_method, order.payment_method)}")
    if order.comment:
        lines.append(f"<b>Комментарий:</b> {escape(order.comment)}")
    lines += ["", *client, "", "<b>Товары:</b>", items or "Нет товаров", "", *pricing, "", f"<b>ID заказа:</b> {order.id}"]
    return "\n".join(lines)


def format_payment_success_message(order, payment) -> str:
    paid_at = f"{payment.payment_date:%d.%m.%Y %H:%M:%S}" if payment.payment_date else "N/A"
    return "\n".join(
        [
            "<b>✅ Платеж успешно выполнен</b>",
            "",
            f"<b>Номер заказа:</b> #{order.order_number}",
            f"<b>Сумма платежа:</b> {_money(payment.amount)} BYN",
            f"<b>Способ оплаты:</b> {PAYMENT_METHOD_NAMES.get(payment.payment_method, payment.payment_method)}",
            f"<b>Hash ID:</b> {payment.hash_id or 'N/A'}",
            f"<b>Дата платежа:</b> {paid_at}",
            "",
            f"<b>Статус заказа:</b> {order.order_status}",
        ]
    )


def format_payment_failure_message(order, payment) -> str:
    return "\n".join(
        [
            "<b>❌ Платеж не выполнен</b>",
            "",
            f"<b>Номер заказа:</b> #{order.order_number}",
            f"<b>Сумма платежа:</b> {_money(payment.amount)} BYN",
            f"<b>Способ оплаты:</b> {PAYMENT_METHOD_NAMES.get(payment.payment_method, payment.payment_method)}",
            f"<b>Hash ID:</b> {payment.hash_id or 'N/A'}",
            f"<b>Статус:</b> {payment.payment_status}",
            "",
            f"<b>Статус заказа:</b> {order.order_status}",
        ]
    )


def format_refund_message(order, payment) -> str:
    return (
        f"<b>↩️ Платеж возвращен</b>\n\n<b>Номер заказа:</b> #{order.order_number}\n"
        f"<b>Сумма возврата:</b> {_money(payment.amount)} BYN"
    )


def _email_items(order) -> str:
    items = "<br>".join(
        f"• {_product_name(item)} - {item.quantity} шт. × {_money(item.unit_price)} BYN = {_money(item.total_price)} BYN"
        for item in order.order_items
    )
    return items or "Нет товаров"


def _email(order, intro: str, outro: str = "") -> str:
    return f"""
    <p>Здравствуйте!</p>
    <p>{intro}</p>
    <p><b>Детали заказа:</b></p>
    <p>{_email_items(order)}</p>
    <p><b>Итоговая сумма:</b> {_money(order.total_amount)} BYN</p>
    {outro}
    {EMAIL_FOOTER}
    """


def order_created_email_invoice(order) -> tuple:
    """ERIP or payment account: the manager sends payment details later."""
    html = _email(
        order,
        f"Ваш заказ №{order.order_number} успешно создан. В ближайшее время менеджер подготовит и отправит вам "
        "письмо с данными для оплаты через ЕРИП или Расчётный счет.",
    )
    return f"Ваш заказ №{order.order_number} успешно оформлен", html


def order_created_email_self_pickup(order) -> tuple:
    html = _email(
        order,
        f"Ваш заказ №{order.order_number} успешно создан и принят в обработку. Оплата будет произведена наличными "
        "или банковской картой при получении товара в нашем пункте выдачи.",
    )
    return f"Ваш заказ №{order.order_number} успешно оформлен", html


def order_paid_email(order) -> tuple:
    html = _email(
        order,
        f"Ваш платеж по заказу №{order.order_number} был успешно выполнен. Мы приняли заказ в работу и подготовим "
        "его к выдаче или отправке.",
        "<p>Когда заказ будет готов, вы получите дополнительное уведомление.</p>",
    )
    return f"Ваш заказ №{order.order_number} успешно оплачен", html

# core/shop.py

"""
Магазин наград: товары покупаются за золото один раз.

Покупка списывает стоимость, отмечает товар купленным, а boost-товар
дополнительно повышает уровень своего атрибута на 1.
"""

import copy
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .effects import BoostStat, Effect, EngineEvent, FailureCode, SpendGold, Transition, invalid, notify
from .models import EngineState, ShopItem, ShopItemType, ValidationError

logger = logging.getLogger(__name__)

def _find(state: EngineState, item_id: str) -> Optional[ShopItem]:
    for item in state.shop_items:
        if item.id == item_id:
            return item
    return None

def items_from_templates(templates: Iterable) -> List[ShopItem]:
    """Товары каталога; id товара совпадает с id шаблона"""
    return [
        ShopItem(
            id=t.id, name=t.name, cost=t.cost, type=t.type,
            description=t.description, stat=t.stat,
        )
        for t in templates
    ]

def stock_shop(state: EngineState, templates: Iterable) -> Transition:
    """Добавить недостающие товары каталога; уже известные id пропускаются"""
    missing = [item for item in items_from_templates(templates) if _find(state, item.id) is None]
    if not missing:
        return Transition(state=state, result=[])

    new_state = copy.deepcopy(state)
    new_state.shop_items.extend(missing)
    logger.info(f"🛍️ В магазин добавлено товаров: {len(missing)}")
    return Transition(state=new_state, result=[item.id for item in missing])

def add_shop_item(state: EngineState, name: str, cost: int, *, item_type: str = ShopItemType.REWARD.value,
                  description: str = "", stat: Optional[str] = None) -> Transition:
    """Пользовательский товар магазина"""
    try:
        item = ShopItem.create(name, cost, type=item_type, description=description, stat=stat)
    except ValidationError as e:
        return invalid(state, FailureCode.INVALID_INPUT, str(e))

    new_state = copy.deepcopy(state)
    new_state.shop_items.append(item)
    logger.debug(f"🛍️ Добавлен товар {item.name} за {item.cost} золота")
    return Transition(state=new_state, result=item)

def purchase_item(state: EngineState, item_id: str, now: datetime) -> Transition:
    item = _find(state, item_id)
    if item is None:
        return invalid(state, FailureCode.NOT_FOUND, f"Товар {item_id} не найден")
    if item.purchased:
        return invalid(state, FailureCode.ALREADY_PURCHASED, f"{item.name} уже куплен")
    if state.user.gold < item.cost:
        return invalid(state, FailureCode.INSUFFICIENT_GOLD,
                       f"Недостаточно золота: {state.user.gold}/{item.cost}")

    new_state = copy.deepcopy(state)
    target = _find(new_state, item_id)
    target.purchased = True
    target.purchased_at = now

    effects: List[Effect] = [SpendGold(target.cost)]
    if target.type == ShopItemType.BOOST.value:
        effects.append(BoostStat(target.stat))
    effects.append(notify(
        EngineEvent.ITEM_PURCHASED, f"Куплено: {target.name} (-{target.cost} золота)",
        item_id=target.id, cost=target.cost, type=target.type,
    ))
    logger.info(f"🛒 Куплен товар {target.name} за {target.cost} золота")
    return Transition(state=new_state, effects=effects, result=target)

def get_shop_items(state: EngineState, available_only: bool = False) -> List[ShopItem]:
    return [item for item in state.shop_items if not (available_only and item.purchased)]

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from medstore.constants import CATEGORIES


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/stats"), KeyboardButton(text="/orders")],
            [KeyboardButton(text="/quotations"), KeyboardButton(text="/products")],
            [KeyboardButton(text="/customers"), KeyboardButton(text="/backup")],
        ],
        resize_keyboard=True,
    )


def categories_kb() -> ReplyKeyboardMarkup:
    keys = list(CATEGORIES)
    rows = [[KeyboardButton(text=k) for k in keys[i:i + 2]] for i in range(0, len(keys), 2)]
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)

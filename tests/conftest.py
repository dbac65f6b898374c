from __future__ import annotations

import pytest
from eth_account import Account

from fakechain import ROUTER, TOKEN, WETH, FakeChain
from volley.barrage.models import ContractAddresses
from volley.sigil.eth import DEV_FUNDER_PRIVATE_KEY


@pytest.fixture()
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture()
def funder(chain: FakeChain):
    account = Account.from_key(DEV_FUNDER_PRIVATE_KEY)
    chain.fund(account.address, 10**24)
    return account


@pytest.fixture()
def contracts() -> ContractAddresses:
    return ContractAddresses(token=TOKEN, weth=WETH, router=ROUTER)

from faker import Faker
from faker.providers import BaseProvider


class WholesaleProvider(BaseProvider):
    """
    批发演示数据生成器
    生成礼品店名称与彩绘玻璃挂饰商品名
    """

    shop_suffixes = [
        'Gift Shop', 'Boutique', 'Gallery', 'Home & Garden', 'Museum Store',
        'Trading Co.', 'Mercantile', 'General Store', 'Art Supply'
    ]

    motifs = [
        'Cardinal', 'Hummingbird', 'Monarch Butterfly', 'Sunflower', 'Dragonfly',
        'Lighthouse', 'Hydrangea', 'Owl', 'Pine Tree', 'Sea Turtle', 'Fox', 'Tulip'
    ]

    sun_catcher_sizes = ['6 inch', '10 inch', '12 inch', '15 inch']

    def shop_name(self):
        """生成礼品店名称"""
        return f"{self.generator.last_name()} {self.random_element(self.shop_suffixes)}"

    def motif(self):
        return self.random_element(self.motifs)

    def sun_catcher_title(self):
        """生成挂饰商品名 (带尺寸，定价据此识别)"""
        size = self.random_element(self.sun_catcher_sizes)
        return f"{self.motif()} Sun Catcher {size}: Stained Glass-Style Window Hanging"


# 初始化 Faker 并添加自定义 Provider
fake = Faker('en_US')
fake.add_provider(WholesaleProvider)

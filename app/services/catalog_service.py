"""商品目录服务 - 公开目录与分类 (只返回上架商品)"""
from sqlalchemy import or_
from app.models.biz import Product, ProductCategory

CATALOG_PER_PAGE = 48


class CatalogService:

    @staticmethod
    def list_products(page=1, per_page=CATALOG_PER_PAGE, category=None, search=None):
        """
        上架商品分页列表，按 sort_order 排序
        category 可以是分类 ID 或 slug；search 匹配标题或货号
        """
        query = Product.query.filter(Product.is_active.is_(True))
        if category:
            if str(category).isdigit():
                query = query.filter(Product.category_id == int(category))
            else:
                query = query.join(ProductCategory).filter(ProductCategory.slug == category)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Product.title.ilike(pattern), Product.sku.ilike(pattern)))
        return query.order_by(Product.sort_order, Product.id).paginate(
            page=page, per_page=per_page, error_out=False
        )

    @staticmethod
    def list_categories():
        return ProductCategory.query.order_by(ProductCategory.sort_order, ProductCategory.id).all()

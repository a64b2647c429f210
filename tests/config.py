from libb import Setting

Setting.unlock()

mysql = Setting()
mysql.drivername='mysql'
mysql.hostname='localhost'
mysql.username='root'
mysql.password='mysql'
mysql.database='test_db'
mysql.port=3306
mysql.timeout=30
mysql.charset='utf8mb4'
mysql.strict=True
mysql.local_infile=True

sqlite = Setting()
sqlite.drivername='sqlite'
sqlite.database=':memory:'

Setting.lock()
